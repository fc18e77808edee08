"""
Category tree walker for a submodel page.

Tree nodes render their children only while expanded. Each node is walked as:
click label (expand) -> settle -> read title and direct item links -> fetch
part details -> walk child nodes one by one -> click label (collapse) -> settle.
The page is a single shared DOM, so nodes are never walked concurrently; only
the detail fetches (isolated contexts) run in parallel.
"""
import logging
from contextlib import asynccontextmanager
from urllib.parse import urljoin

from autopiter.config import BASE_URL
from autopiter.details import DetailFetcher
from autopiter.document import DocumentHandle, settle
from autopiter.models import CategoryNode, PartLink

logger = logging.getLogger(__name__)


class TreeWalker:
    def __init__(self, fetcher: DetailFetcher, selectors: dict[str, str], base_url: str = BASE_URL):
        self.fetcher = fetcher
        self.selectors = selectors
        self.base_url = base_url

    def _child_selectors(self) -> tuple[str, ...]:
        return (self.selectors["item_link"], self.selectors["tree_node"])

    @asynccontextmanager
    async def expanded(self, doc: DocumentHandle, node, label):
        """Node is collapsed on entry; expanded inside the block; collapsed again on every exit."""
        await doc.click(label)
        try:
            await settle(doc, node, self._child_selectors(), expect_elements=True)
            yield node
        finally:
            await doc.click(label)
            await settle(doc, node, self._child_selectors())

    async def _read_links(self, doc: DocumentHandle, node) -> list[PartLink]:
        elements = await doc.query_direct(node, self.selectors["item_link"], self.selectors["tree_node"])
        # resolved like the anchor's href property: relative to the page, not the site root
        page_url = doc.url or self.base_url
        links = []
        for el in elements:
            href = await doc.attribute(el, "href")
            if not href:
                continue
            name = await doc.text(el)
            links.append(PartLink(name=name or "", link=urljoin(page_url, href)))
        return links

    async def walk(self, doc: DocumentHandle, node) -> CategoryNode:
        """
        Walk one tree node and its descendants, pre-order. Errors while reading
        the node's links or children are logged and the partially filled node is
        returned, so the caller's loop over sibling nodes keeps going.
        """
        category = CategoryNode()
        title = await doc.query_one(node, self.selectors["tree_title"])
        category.name = (await doc.text(title) or "") if title is not None else ""

        label = await doc.query_one(node, self.selectors["tree_label"])
        if label is None:
            logger.warning("Tree node %r has no label control; skipping its contents", category.name)
            return category

        try:
            async with self.expanded(doc, node, label):
                try:
                    links = await self._read_links(doc, node)
                    await self.fetcher.fetch_all(links)
                    category.links.extend(links)

                    children = await doc.query_direct(node, self.selectors["tree_node"], self.selectors["tree_node"])
                    for child in children:
                        category.subcategories.append(await self.walk(doc, child))
                except Exception:
                    logger.exception("Error while extracting category %r", category.name)
        except Exception:
            # toggle itself failed; nothing more can be read from this node
            logger.exception("Error toggling category %r", category.name)
        return category

    async def walk_page(self, doc: DocumentHandle) -> list[CategoryNode]:
        """All top-level categories of the current page, in document order."""
        nodes = await doc.query_direct(None, self.selectors["tree_node"], self.selectors["tree_node"])
        categories = []
        for node in nodes:
            categories.append(await self.walk(doc, node))
        return categories
