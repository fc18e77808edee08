"""
Per-brand JSON result store.
<output_dir>/<brand>.json holds {brand_name: BrandRecord}. A brand entry is replaced
as a whole on merge; other keys already in the file are kept.
"""
import json
import logging
import os
import re
import tempfile
from pathlib import Path

from autopiter.exceptions import StoreWriteError
from autopiter.models import BrandRecord

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def brand_path(output_dir: str | Path, brand_name: str) -> Path:
    """Path of the brand's file; path separators and reserved characters become '_'."""
    safe = _UNSAFE_FILENAME_CHARS.sub("_", brand_name).strip() or "_"
    return Path(output_dir) / f"{safe}.json"


def load(path: str | Path) -> dict:
    """
    Read a brand file. Missing, unreadable or malformed files give an empty store
    (logged); a crawl then starts from no prior data for that file.
    """
    path = Path(path)
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s, starting with empty store: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top level is %s, not an object", path, type(data).__name__)
        return {}
    return data


def merge(store: dict, brand_name: str, record: BrandRecord | dict) -> dict:
    """Set or overwrite the single brand key. Returns the same store."""
    store[brand_name] = record.to_dict() if isinstance(record, BrandRecord) else record
    return store


def persist(store: dict, path: str | Path) -> Path:
    """
    Write the store pretty-printed (insertion key order, 2-space indent).
    Goes through a temp file in the same directory and os.replace, so a crash
    leaves either the old file or the new one.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(store, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as e:
        raise StoreWriteError(path, e) from e
    return path


def load_brand(path: str | Path, brand_name: str) -> BrandRecord | None:
    data = load(path).get(brand_name)
    if not isinstance(data, dict):
        return None
    return BrandRecord.from_dict(data)


def iter_brand_files(output_dir: str | Path):
    """Yield (brand_name, BrandRecord) for every brand entry in every *.json under output_dir."""
    for path in sorted(Path(output_dir).glob("*.json")):
        for brand_name, data in load(path).items():
            if isinstance(data, dict):
                yield brand_name, BrandRecord.from_dict(data)
