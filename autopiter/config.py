"""
Autopiter scraper – centralized configuration.
Concurrency, timeouts, settle polling, browser, proxy, selector table.
"""
import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Paths
PACKAGE_DIR = Path(__file__).resolve().parent
BASE_DIR = PACKAGE_DIR.parent

load_dotenv(BASE_DIR / ".env")
load_dotenv(PACKAGE_DIR / ".env")

OUTPUT_DIR = Path(os.getenv("AUTOPITER_OUTPUT_DIR", str(BASE_DIR / "brands")))  # one <brand>.json per brand

# Brand range (inclusive, 1-based; the site lists ~577 brands)
START_BRAND = int(os.getenv("AUTOPITER_START_BRAND", "1"))
END_BRAND = int(os.getenv("AUTOPITER_END_BRAND", "10"))

# Concurrency: isolated contexts open at once for part-detail pages
MAX_CONCURRENT_SESSIONS = int(os.getenv("AUTOPITER_MAX_SESSIONS", "8"))

# Timeouts
PAGE_LOAD_TIMEOUT = int(os.getenv("AUTOPITER_PAGE_TIMEOUT", "45000"))  # ms
NAVIGATION_TIMEOUT = int(os.getenv("AUTOPITER_NAV_TIMEOUT", "30000"))  # ms
DETAIL_TIMEOUT_SEC = float(os.getenv("AUTOPITER_DETAIL_TIMEOUT", "60"))  # whole fetch of one detail page

# Settle polling after tree toggles and navigation (ms).
# The tree renders children lazily and gives no ready signal: poll the child
# count until two consecutive reads agree, never shorter than SETTLE_DELAY_MS.
SETTLE_DELAY_MS = int(os.getenv("AUTOPITER_SETTLE_DELAY", "300"))
SETTLE_POLL_MS = int(os.getenv("AUTOPITER_SETTLE_POLL", "100"))
SETTLE_TIMEOUT_MS = int(os.getenv("AUTOPITER_SETTLE_TIMEOUT", "5000"))

# Bandwidth
BANDWIDTH_LOG_EVERY_N_PAGES = 100
BLOCKED_RESOURCE_TYPES = ("image", "imageset", "font", "stylesheet", "media")

# Browser visibility (default True for servers; set AUTOPITER_HEADLESS=0 to show window)
HEADLESS = os.getenv("AUTOPITER_HEADLESS", "1").strip().lower() in ("1", "true", "yes")

# Keep browser open after run until user presses Enter (default True when visible)
_env_keep = os.getenv("AUTOPITER_KEEP_BROWSER_OPEN", "").strip().lower()
KEEP_BROWSER_OPEN = _env_keep in ("1", "true", "yes") if _env_keep else (not HEADLESS)

# playwright-stealth patches on every new page
STEALTH = os.getenv("AUTOPITER_STEALTH", "1").strip().lower() in ("1", "true", "yes")

USER_AGENT = os.getenv(
    "AUTOPITER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
EXTRA_HTTP_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.google.com/",
}


# Proxy (from .env at repo root or here)
def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default).strip()

PROXY_SERVER = _env("AUTOPITER_PROXY_SERVER", _env("PROXY_SERVER", ""))
PROXY_USER = _env("AUTOPITER_PROXY_USER", _env("PROXY_USER", ""))
PROXY_PASS = _env("AUTOPITER_PROXY_PASS", _env("PROXY_PASS", ""))

def get_proxy_url() -> str | None:
    if not (PROXY_SERVER and PROXY_USER and PROXY_PASS):
        return None
    return f"http://{PROXY_USER}:{PROXY_PASS}@{PROXY_SERVER}"

# Base URL
BASE_URL = "https://autopiter.ru"
BRAND_LIST_URL = f"{BASE_URL}/nonoriginaldetails"

# CSS selectors for the site's markup (hashed CSS-module class names)
SELECTORS = {
    "brand_item": ".AlphabetList__content___2spqv a",
    "model_item": ".AlphabetList__content___2spqv a",
    "submodel_row": ".MobileTable__items___19_GW",
    "submodel_link": ".MobileTable__arrowIcon___1mNw2",
    "submodel_item": ".MobileTable__item___318Jx",
    "submodel_title": ".MobileTable__itemTitle___11AHD",
    "submodel_value": ".MobileTable__itemValue___hcia7",
    "tree_node": ".TreeNode__wrapper___8AFSc",
    "tree_label": ".TreeNode__label___28j8R",
    "tree_title": ".TreeNode__title___2rsvp",
    "item_link": ".ItemLink__itemLink___2g1RR",
    "detail_block": ".MobileTable__items___19_GW",
    "detail_name": ".CatalogMobileTable__name___3grBb > .CatalogMobileTable__value___2lue8",
    "detail_parameter": ".NonOriginalPartsTable__parameters___z8AHR li",
    "parameter_key": ".tcTxt",
    "parameter_value": ".tcVal",
}

SELECTORS_FILE = _env("AUTOPITER_SELECTORS_FILE")


def load_selectors(path: str | Path | None = None) -> dict[str, str]:
    """
    Selector table with overrides from a JSON object file (AUTOPITER_SELECTORS_FILE).
    Unknown keys are rejected so a typo does not silently fall back to the default.
    """
    selectors = dict(SELECTORS)
    path = path or SELECTORS_FILE
    if not path:
        return selectors
    with open(path, encoding="utf-8") as f:
        overrides = json.load(f)
    unknown = set(overrides) - set(SELECTORS)
    if unknown:
        raise ValueError(f"Unknown selector keys in {path}: {sorted(unknown)}")
    selectors.update(overrides)
    return selectors
