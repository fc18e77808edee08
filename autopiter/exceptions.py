"""Errors raised by the crawler and the result store."""


class CrawlError(Exception):
    """Base class for autopiter crawl errors."""


class CrawlInterrupted(CrawlError):
    """Shutdown was requested while a brand was being crawled; its record is incomplete."""


class StoreWriteError(CrawlError):
    """A brand file could not be written."""

    def __init__(self, path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write {path}: {cause}")
