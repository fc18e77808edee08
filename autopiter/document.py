"""
Rendered-document boundary used by the crawler.

DocumentHandle is what the tree walker, detail fetcher and hierarchy crawler
talk to; PlaywrightDocument implements it on a Playwright page and
BrowserSession creates the primary document and isolated sessions (one
browser context each) for part-detail pages.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, Protocol

from playwright.async_api import Browser, BrowserContext, ElementHandle, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright_stealth import stealth_async

from autopiter.config import (
    EXTRA_HTTP_HEADERS,
    NAVIGATION_TIMEOUT,
    PAGE_LOAD_TIMEOUT,
    SETTLE_DELAY_MS,
    SETTLE_POLL_MS,
    SETTLE_TIMEOUT_MS,
    STEALTH,
    USER_AGENT,
)

logger = logging.getLogger(__name__)


class DocumentHandle(Protocol):
    @property
    def url(self) -> str | None: ...

    async def navigate(self, url: str, ready_selector: str | None = None) -> None: ...

    async def query_all(self, scope: Any, selector: str) -> list: ...

    async def query_one(self, scope: Any, selector: str) -> Any | None: ...

    async def query_direct(self, scope: Any, selector: str, boundary: str) -> list: ...

    async def text(self, element: Any) -> str | None: ...

    async def attribute(self, element: Any, name: str) -> str | None: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def click(self, element: Any) -> None: ...

    async def wait_for(self, ms: int) -> None: ...

    def isolated_session(self) -> AsyncContextManager["DocumentHandle"]: ...


async def settle(
    doc: DocumentHandle,
    scope: Any,
    selectors: tuple[str, ...],
    *,
    expect_elements: bool = False,
    min_ms: int = SETTLE_DELAY_MS,
    poll_ms: int = SETTLE_POLL_MS,
    timeout_ms: int = SETTLE_TIMEOUT_MS,
) -> bool:
    """
    Wait until the number of elements matching selectors under scope stops changing.
    Waits at least min_ms, then polls every poll_ms until two consecutive counts agree.
    With expect_elements a zero count never counts as settled: after expanding a
    node its children may render late, so keep polling until they appear.
    Returns False if timeout_ms elapsed first (the caller reads whatever is rendered).
    """
    await doc.wait_for(min_ms)
    waited = min_ms
    previous = await _count(doc, scope, selectors)
    while waited < timeout_ms:
        await doc.wait_for(poll_ms)
        waited += poll_ms
        current = await _count(doc, scope, selectors)
        if current == previous and (current or not expect_elements):
            return True
        previous = current
    logger.debug("Settle timed out after %d ms (%d elements)", waited, previous)
    return False


async def _count(doc: DocumentHandle, scope: Any, selectors: tuple[str, ...]) -> int:
    total = 0
    for selector in selectors:
        total += len(await doc.query_all(scope, selector))
    return total


_QUERY_DIRECT_JS = """(root, [sel, boundary]) => Array.from(root.querySelectorAll(sel))
    .filter(el => {
        const owner = el.parentElement ? el.parentElement.closest(boundary) : null;
        return owner === root || (root === document && owner === null);
    })
"""


class PlaywrightDocument:
    """DocumentHandle over one Playwright page."""

    def __init__(self, page: Page, session: "BrowserSession"):
        self.page = page
        self.session = session

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, ready_selector: str | None = None) -> None:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=PAGE_LOAD_TIMEOUT)
        self.session.add_page()
        if ready_selector:
            # Pages without the element are valid (e.g. a submodel with no categories).
            try:
                await self.page.wait_for_selector(ready_selector, state="attached", timeout=NAVIGATION_TIMEOUT)
            except PlaywrightTimeoutError:
                logger.debug("No %s on %s", ready_selector, url)

    async def query_all(self, scope: ElementHandle | None, selector: str) -> list[ElementHandle]:
        return await (scope or self.page).query_selector_all(selector)

    async def query_one(self, scope: ElementHandle | None, selector: str) -> ElementHandle | None:
        return await (scope or self.page).query_selector(selector)

    async def query_direct(self, scope: ElementHandle | None, selector: str, boundary: str) -> list[ElementHandle]:
        if scope is None:
            handle = await self.page.evaluate_handle(
                f"([sel, boundary]) => ({_QUERY_DIRECT_JS})(document, [sel, boundary])",
                [selector, boundary],
            )
        else:
            handle = await scope.evaluate_handle(_QUERY_DIRECT_JS, [selector, boundary])
        try:
            props = await handle.get_properties()
            elements = [prop.as_element() for prop in props.values()]
        finally:
            await handle.dispose()
        return [el for el in elements if el is not None]

    async def text(self, element: ElementHandle) -> str | None:
        content = await element.text_content()
        return content.strip() if content is not None else None

    async def attribute(self, element: ElementHandle, name: str) -> str | None:
        return await element.get_attribute(name)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def click(self, element: ElementHandle) -> None:
        # DOM click: the tree label may be covered or scrolled out of view
        await element.evaluate("el => el.click()")

    async def wait_for(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)

    def isolated_session(self) -> AsyncContextManager["PlaywrightDocument"]:
        return self.session.isolated()


class BrowserSession:
    """
    Owns the browser-level setup shared by every context: user agent, headers,
    request routing (resource blocking / bandwidth) and stealth patching.
    """

    def __init__(self, browser: Browser, on_route=None, add_page_fn=None, stealth: bool = STEALTH):
        self.browser = browser
        self.on_route = on_route
        self.add_page_fn = add_page_fn
        self.stealth = stealth
        self.open_contexts = 0
        self._primary: BrowserContext | None = None

    def add_page(self) -> None:
        if self.add_page_fn is not None:
            self.add_page_fn()

    async def _new_context(self) -> BrowserContext:
        ctx = await self.browser.new_context(
            viewport={"width": 1280, "height": 720},
            user_agent=USER_AGENT,
            locale="ru-RU",
            timezone_id="Europe/Moscow",
            extra_http_headers=EXTRA_HTTP_HEADERS,
        )
        if self.on_route is not None:
            await ctx.route("**/*", self.on_route)
        self.open_contexts += 1
        return ctx

    async def _new_page(self, ctx: BrowserContext) -> Page:
        page = await ctx.new_page()
        if self.stealth:
            await stealth_async(page)
        return page

    async def _close_context(self, ctx: BrowserContext) -> None:
        self.open_contexts -= 1
        await ctx.close()

    async def open_document(self) -> PlaywrightDocument:
        """Primary document: one long-lived page driven sequentially by the crawler."""
        if self._primary is None:
            self._primary = await self._new_context()
        page = await self._new_page(self._primary)
        return PlaywrightDocument(page, self)

    @asynccontextmanager
    async def isolated(self):
        """Fresh context (own cookies/storage) with one page; closed on every exit path."""
        ctx = await self._new_context()
        try:
            page = await self._new_page(ctx)
            yield PlaywrightDocument(page, self)
        finally:
            await self._close_context(ctx)

    async def close(self) -> None:
        if self._primary is not None:
            ctx, self._primary = self._primary, None
            await self._close_context(ctx)
        if self.open_contexts:
            logger.warning("%d isolated contexts still open at shutdown", self.open_contexts)
