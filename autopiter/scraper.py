"""
Autopiter non-original parts scraper – Playwright, bounded isolated contexts for
part details, per-brand JSON output with whole-brand overwrite.
Brands are selected by an inclusive 1-based range over the site's brand list.
"""
import argparse
import asyncio
import logging
import signal
from pathlib import Path

from playwright.async_api import Request, Route, async_playwright
from tqdm import tqdm

from autopiter import store
from autopiter.config import (
    BANDWIDTH_LOG_EVERY_N_PAGES,
    BASE_URL,
    BLOCKED_RESOURCE_TYPES,
    BRAND_LIST_URL,
    END_BRAND,
    HEADLESS,
    KEEP_BROWSER_OPEN,
    MAX_CONCURRENT_SESSIONS,
    OUTPUT_DIR,
    START_BRAND,
    get_proxy_url,
    load_selectors,
)
from autopiter.crawler import HierarchyCrawler, scrape_brands
from autopiter.details import DetailFetcher
from autopiter.document import BrowserSession, DocumentHandle
from autopiter.exceptions import CrawlInterrupted
from autopiter.tree import TreeWalker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("autopiter")

_shutdown = False


def _is_shutdown() -> bool:
    return _shutdown


def _set_shutdown(*_):
    global _shutdown
    _shutdown = True
    logger.info("SIGTERM/SIGINT received; finishing current step and exiting without saving the brand in progress.")


async def _wait_before_close(keep_browser_open: bool):
    """If keep_browser_open, wait for Enter so the user can inspect the browser."""
    if not keep_browser_open:
        return
    logger.info("Scrape finished. Press Enter to close the browser...")
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, lambda: input("Press Enter to close the browser... "))


# --------------- Bandwidth tracking & route abort ---------------
def _create_bandwidth_tracker():
    data = {"bytes": 0, "pages": 0}

    async def on_route(route: Route, request: Request):
        if request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
            return
        try:
            response = await route.fetch()
            body = await response.body()
            data["bytes"] += len(body)
            await route.fulfill(response=response, body=body)
        except Exception:
            await route.continue_()

    def add_page():
        data["pages"] += 1
        if data["pages"] % BANDWIDTH_LOG_EVERY_N_PAGES == 0:
            kb = data["bytes"] / 1024
            logger.info(
                "Bandwidth (last %d pages): %.1f KB total (~%.1f KB/page)",
                data["pages"], kb, kb / data["pages"] if data["pages"] else 0,
            )

    return on_route, add_page, data


def _build_launch_options():
    """Playwright launch options (proxy, headless, args)."""
    proxy_url = get_proxy_url()
    opts = {
        "headless": HEADLESS,
        "args": [
            "--disable-blink-features=AutomationControlled",
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-accelerated-2d-canvas",
            "--disable-gpu",
        ],
    }
    if proxy_url and "@" in proxy_url:
        try:
            after_http = proxy_url.split("://", 1)[1]
            user_pass, server = after_http.rsplit("@", 1)
            u, pw = user_pass.split(":", 1) if ":" in user_pass else (user_pass, "")
            opts["proxy"] = {"server": f"http://{server}", "username": u, "password": pw}
        except Exception as e:
            logger.warning("Proxy URL parse failed: %s; running without proxy.", e)
    return opts


def select_brands(brands: list[dict], start: int, end: int) -> list[dict]:
    """Inclusive 1-based range; end past the list is clamped."""
    if start < 1 or end < start:
        raise ValueError(f"Invalid brand range [{start}, {end}]: need 1 <= start <= end")
    return brands[start - 1:end]


async def process_brand(crawler: HierarchyCrawler, brand: dict, output_dir: Path) -> bool:
    """
    load -> crawl -> merge -> persist for one brand. A failed or interrupted crawl
    leaves the brand file untouched and returns False. Write errors propagate.
    """
    name = brand["name"]
    path = store.brand_path(output_dir, name)
    data = store.load(path)
    try:
        record = await crawler.crawl_brand(name, brand["link"])
    except CrawlInterrupted:
        raise
    except Exception as e:
        logger.exception("Brand %s (%s) failed; %s not updated: %s", name, brand["link"], path, e)
        return False
    store.merge(data, name, record)
    store.persist(data, path)
    logger.info("Brand %s models written to %s", name, path)
    return True


async def run_brands(
    doc: DocumentHandle,
    start: int,
    end: int,
    output_dir: Path,
    concurrency: int = MAX_CONCURRENT_SESSIONS,
    selectors: dict[str, str] | None = None,
    brand_list_url: str = BRAND_LIST_URL,
    base_url: str = BASE_URL,
    should_stop=_is_shutdown,
    progress_bar: bool = True,
) -> int:
    """Crawl brands [start, end] of the brand list into output_dir. Returns number of brands written."""
    selectors = selectors or load_selectors()
    output_dir.mkdir(parents=True, exist_ok=True)

    brands = await scrape_brands(doc, brand_list_url, selectors, base_url)
    selected = select_brands(brands, start, end)
    logger.info("Brand list: %d brands; processing %d (%d..%d)", len(brands), len(selected), start, end)

    fetcher = DetailFetcher(doc, selectors, concurrency=concurrency)
    walker = TreeWalker(fetcher, selectors, base_url=base_url)
    crawler = HierarchyCrawler(doc, walker, selectors, base_url=base_url, should_stop=should_stop)

    written = 0
    brand_iter = tqdm(selected, desc="Brands", unit="brand", ncols=100) if progress_bar else selected
    for brand in brand_iter:
        if should_stop():
            break
        if progress_bar:
            brand_iter.set_postfix_str(brand["name"])
        try:
            if await process_brand(crawler, brand, output_dir):
                written += 1
        except CrawlInterrupted as e:
            logger.warning("%s; %s not updated", e, store.brand_path(output_dir, brand["name"]))
            break
    logger.info("Detail pages: %d fetched, %d failed", fetcher.fetched, fetcher.failed)
    return written


async def _run_scraper(
    start: int,
    end: int,
    output_dir: Path,
    concurrency: int,
    keep_browser_open: bool | None = None,
):
    if keep_browser_open is None:
        keep_browser_open = KEEP_BROWSER_OPEN
    on_route, add_page_fn, bw_data = _create_bandwidth_tracker()
    launch_options = _build_launch_options()

    logger.info("Launching browser...")
    async with async_playwright() as p:
        browser = await p.chromium.launch(**launch_options)
        session = BrowserSession(browser, on_route=on_route, add_page_fn=add_page_fn)
        try:
            doc = await session.open_document()
            written = await run_brands(doc, start, end, output_dir, concurrency=concurrency)
            logger.info("Wrote %d brand files to %s", written, output_dir)
        finally:
            await session.close()
            await _wait_before_close(keep_browser_open)
            await browser.close()
    logger.info("Scrape finished. Total bandwidth: %.1f KB for %d pages", bw_data["bytes"] / 1024, bw_data["pages"])


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Autopiter non-original parts catalog scraper")
    ap.add_argument("--start", type=int, default=START_BRAND, help="First brand number, 1-based (default %(default)s)")
    ap.add_argument("--end", type=int, default=END_BRAND, help="Last brand number, inclusive (default %(default)s)")
    ap.add_argument("--output-dir", "-o", type=Path, default=OUTPUT_DIR, help="Directory for <brand>.json files")
    ap.add_argument("--concurrency", "-c", type=int, default=MAX_CONCURRENT_SESSIONS, help="Max isolated contexts open at once for part details")
    ap.add_argument("--keep-browser-open", action="store_true", help="After run, wait for Enter before closing browser (default when browser is visible)")
    ap.add_argument("--no-keep-browser-open", action="store_true", dest="no_keep_browser_open", help="Close browser immediately when done (no Enter)")
    return ap


def main(argv=None):
    ap = build_parser()
    args = ap.parse_args(argv)
    if args.start < 1 or args.end < args.start:
        ap.error(f"need 1 <= --start <= --end, got {args.start}..{args.end}")
    if args.concurrency < 1:
        ap.error("--concurrency must be at least 1")

    keep_browser_open = KEEP_BROWSER_OPEN
    if args.keep_browser_open:
        keep_browser_open = True
    if args.no_keep_browser_open:
        keep_browser_open = False

    signal.signal(signal.SIGTERM, _set_shutdown)
    signal.signal(signal.SIGINT, _set_shutdown)
    asyncio.run(_run_scraper(args.start, args.end, args.output_dir, args.concurrency, keep_browser_open=keep_browser_open))


if __name__ == "__main__":
    main()
