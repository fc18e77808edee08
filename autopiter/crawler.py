"""
Brand -> model -> submodel traversal on the primary document.
Every level is navigated sequentially on one page; the category tree of each
submodel is handed to TreeWalker.
"""
import logging
from urllib.parse import urljoin

from autopiter.config import BASE_URL
from autopiter.document import DocumentHandle
from autopiter.exceptions import CrawlInterrupted
from autopiter.models import BrandRecord, CategoryNode, ModelRecord, SubmodelRecord
from autopiter.tree import TreeWalker

logger = logging.getLogger(__name__)

# [{name, href}] for every anchor matching the selector
LINK_LIST_JS = """(sel) => Array.from(document.querySelectorAll(sel)).map(a => ({
    name: (a.textContent || '').trim(),
    href: a.getAttribute('href'),
}))
"""

# One object per submodel table row: label -> text pairs plus the row's arrow link.
SUBMODEL_ROWS_JS = """(sel) => Array.from(document.querySelectorAll(sel.submodel_row)).map(row => {
    const fields = {};
    row.querySelectorAll(sel.submodel_item).forEach(item => {
        const titleEl = item.querySelector(sel.submodel_title);
        const valueEl = item.querySelector(sel.submodel_value);
        if (titleEl && valueEl) {
            fields[titleEl.textContent.trim()] = valueEl.textContent.trim();
        }
    });
    const arrow = row.querySelector(sel.submodel_link);
    const anchor = arrow ? arrow.closest('a') : null;
    return { fields, href: anchor ? anchor.getAttribute('href') : null };
})
"""


def _link_items(raw: list[dict] | None, page_url: str) -> list[dict]:
    """
    Every listed entry, in site order, so 1-based positions match what the page
    shows. Blank names are kept as ""; an entry without href gets link "".
    """
    out = []
    for item in raw or []:
        name = (item.get("name") or "").strip()
        href = (item.get("href") or "").strip()
        out.append({"name": name, "link": urljoin(page_url, href) if href else ""})
    return out


async def scrape_brands(doc: DocumentHandle, url: str, selectors: dict[str, str], base_url: str = BASE_URL) -> list[dict]:
    """[{name, link}, ...] in site order. Navigation errors propagate: no brand list, no run."""
    await doc.navigate(url, ready_selector=selectors["brand_item"])
    return _link_items(await doc.evaluate(LINK_LIST_JS, selectors["brand_item"]), doc.url or base_url)


async def scrape_models(doc: DocumentHandle, brand_link: str, selectors: dict[str, str], base_url: str = BASE_URL) -> list[dict]:
    await doc.navigate(brand_link, ready_selector=selectors["model_item"])
    return _link_items(await doc.evaluate(LINK_LIST_JS, selectors["model_item"]), doc.url or base_url)


async def scrape_submodels(doc: DocumentHandle, model_link: str, selectors: dict[str, str], base_url: str = BASE_URL) -> list[SubmodelRecord]:
    await doc.navigate(model_link, ready_selector=selectors["submodel_row"])
    rows = await doc.evaluate(SUBMODEL_ROWS_JS, selectors)
    page_url = doc.url or base_url
    submodels = []
    for row in rows or []:
        href = row.get("href")
        submodels.append(SubmodelRecord(
            fields=dict(row.get("fields") or {}),
            link=urljoin(page_url, href) if href else "",
        ))
    return submodels


async def scrape_parts(doc: DocumentHandle, walker: TreeWalker, submodel_link: str) -> list[CategoryNode]:
    """Category tree of one submodel page; a page without tree nodes gives []."""
    await doc.navigate(submodel_link, ready_selector=walker.selectors["tree_node"])
    return await walker.walk_page(doc)


class HierarchyCrawler:
    """
    Builds one BrandRecord. Failures on a model or submodel page are logged and
    leave that level empty; they never abort the brand.
    """

    def __init__(self, doc: DocumentHandle, walker: TreeWalker, selectors: dict[str, str], base_url: str = BASE_URL, should_stop=None):
        self.doc = doc
        self.walker = walker
        self.selectors = selectors
        self.base_url = base_url
        self.should_stop = should_stop or (lambda: False)

    def _check_stop(self, brand_name: str) -> None:
        if self.should_stop():
            raise CrawlInterrupted(f"Stopped while crawling {brand_name}")

    async def crawl_submodel(self, submodel: SubmodelRecord) -> None:
        if not submodel.link:
            logger.warning("Submodel %s has no link; parts left empty", submodel.fields)
            return
        try:
            submodel.parts = await scrape_parts(self.doc, self.walker, submodel.link)
        except Exception as e:
            logger.error("Submodel %s failed: %s", submodel.link, e)
            submodel.parts = []

    async def crawl_model(self, brand_name: str, model_name: str, model_link: str) -> ModelRecord:
        record = ModelRecord(link=model_link)
        if not model_link:
            logger.warning("Model %s %r has no link; submodels left empty", brand_name, model_name)
            return record
        try:
            record.submodels = await scrape_submodels(self.doc, model_link, self.selectors, self.base_url)
        except Exception as e:
            logger.error("Model %s %s (%s) failed: %s", brand_name, model_name, model_link, e)
            return record
        logger.info("  %s %s: %d submodels", brand_name, model_name, len(record.submodels))
        for submodel in record.submodels:
            self._check_stop(brand_name)
            await self.crawl_submodel(submodel)
        return record

    async def crawl_brand(self, brand_name: str, brand_link: str) -> BrandRecord:
        """
        Full record for one brand. Errors listing the brand's models propagate
        (the caller skips the brand); CrawlInterrupted is raised on shutdown.
        """
        brand = BrandRecord(link=brand_link)
        models = await scrape_models(self.doc, brand_link, self.selectors, self.base_url)
        logger.info("Brand %s: %d models", brand_name, len(models))
        for model in models:
            self._check_stop(brand_name)
            brand.models[model["name"]] = await self.crawl_model(brand_name, model["name"], model["link"])
        return brand
