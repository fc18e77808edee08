"""Shared fixtures: a fake site, its primary document and a walker wired to it."""

import pytest

from autopiter.config import SELECTORS
from autopiter.details import DetailFetcher
from autopiter.tree import TreeWalker
from tests.fakes import FakeDocument, FakeSite


@pytest.fixture
def selectors() -> dict[str, str]:
    return dict(SELECTORS)


@pytest.fixture
def site(selectors: dict[str, str]) -> FakeSite:
    return FakeSite(selectors)


@pytest.fixture
def doc(site: FakeSite) -> FakeDocument:
    return site.document()


@pytest.fixture
def fetcher(doc: FakeDocument, selectors: dict[str, str]) -> DetailFetcher:
    return DetailFetcher(doc, selectors, concurrency=4, timeout=5)


@pytest.fixture
def walker(fetcher: DetailFetcher, selectors: dict[str, str]) -> TreeWalker:
    return TreeWalker(fetcher, selectors, base_url="https://autopiter.ru")
