"""
Part-detail pages. Every fetch runs in its own isolated browser context so
concurrent fetches never touch each other's state or the tree walker's page.
"""
import asyncio
import logging

from autopiter.config import DETAIL_TIMEOUT_SEC, MAX_CONCURRENT_SESSIONS
from autopiter.document import DocumentHandle
from autopiter.models import PartDetail, PartLink

logger = logging.getLogger(__name__)

# One PartDetail per detail-table block; missing sub-elements give null name/key/value.
DETAIL_TABLE_JS = """(sel) => Array.from(document.querySelectorAll(sel.detail_block)).map(item => {
    const nameEl = item.querySelector(sel.detail_name);
    const name = nameEl ? nameEl.textContent : null;
    const parameters = Array.from(item.querySelectorAll(sel.detail_parameter)).map(p => {
        const keyEl = p.querySelector(sel.parameter_key);
        const valueEl = p.querySelector(sel.parameter_value);
        return {
            key: keyEl ? keyEl.textContent.trim() : null,
            value: valueEl ? valueEl.textContent.trim() : null,
        };
    });
    return { name, parameters };
})
"""


class DetailFetcher:
    """
    Fetches part details for leaf item links through a bounded pool of workers.

    session is any DocumentHandle; only its isolated_session() is used, never
    its own page.
    """

    def __init__(
        self,
        session: DocumentHandle,
        selectors: dict[str, str],
        concurrency: int = MAX_CONCURRENT_SESSIONS,
        timeout: float | None = DETAIL_TIMEOUT_SEC,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.session = session
        self.selectors = selectors
        self.concurrency = concurrency
        self.timeout = timeout
        self.fetched = 0
        self.failed = 0

    async def fetch(self, link: str) -> list[PartDetail]:
        async with self.session.isolated_session() as doc:
            await doc.navigate(link, ready_selector=self.selectors["detail_block"])
            rows = await doc.evaluate(DETAIL_TABLE_JS, self.selectors)
        return [PartDetail.from_dict(row) for row in rows or []]

    async def _fetch_into(self, part_link: PartLink) -> None:
        try:
            if self.timeout:
                parts = await asyncio.wait_for(self.fetch(part_link.link), self.timeout)
            else:
                parts = await self.fetch(part_link.link)
        except Exception as e:
            self.failed += 1
            logger.error("Error navigating to %s: %r", part_link.link, e)
            return
        part_link.parts = parts
        self.fetched += 1

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            part_link = await queue.get()
            try:
                if part_link is None:
                    return
                await self._fetch_into(part_link)
            finally:
                queue.task_done()

    async def fetch_all(self, links: list[PartLink]) -> list[PartLink]:
        """
        Fill parts on each link in place. At most `concurrency` isolated sessions
        are open at once; a failed link keeps parts=None. Returns links in their
        original order.
        """
        if not links:
            return links
        n_workers = min(self.concurrency, len(links))
        queue: asyncio.Queue = asyncio.Queue(maxsize=n_workers)
        workers = [asyncio.create_task(self._worker(queue)) for _ in range(n_workers)]
        try:
            for part_link in links:
                await queue.put(part_link)
            for _ in workers:
                await queue.put(None)
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                if not task.done():
                    task.cancel()
        return links
