"""Tests for the category tree walker.

The fake tree only renders a node's links and children while it is expanded,
so these tests also check that the walker follows the expand/read/collapse
protocol rather than reading a fully rendered tree.
"""

import pytest

from autopiter.tree import TreeWalker
from tests.fakes import FakeDocument, FakeLink, FakeNode, FakeSite, detail_rows

SUBMODEL_URL = "https://autopiter.ru/nonoriginaldetails/audi/a4/b8"
PADSET = "https://autopiter.ru/goods/padset"
ROTOR = "https://autopiter.ru/goods/rotor"
SENSOR = "https://autopiter.ru/goods/sensorx"


def _brakes(site: FakeSite) -> tuple[FakeNode, FakeNode]:
    sensors = FakeNode("Brake Sensors", links=[FakeLink("SensorX", SENSOR)])
    brakes = FakeNode(
        "Brakes",
        links=[FakeLink("PadSet", PADSET), FakeLink("Rotor", "/goods/rotor")],
        children=[sensors],
    )
    site.add_page(SUBMODEL_URL, nodes=[brakes])
    site.add_page(PADSET, data=detail_rows("Pad set"))
    site.add_page(ROTOR, data=detail_rows("Rotor front", "Rotor rear"))
    site.add_page(SENSOR, data=detail_rows(None))
    return brakes, sensors


class TestWalkScenario:
    @pytest.mark.asyncio
    async def test_brakes_tree(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        """Walking Brakes shall return its direct links and the Brake Sensors subtree."""
        brakes, sensors = _brakes(site)
        await doc.navigate(SUBMODEL_URL)

        node = await walker.walk(doc, brakes)

        assert node.name == "Brakes"
        assert [(link.name, link.link) for link in node.links] == [("PadSet", PADSET), ("Rotor", ROTOR)]
        assert [p.name for p in node.links[0].parts] == ["Pad set"]
        assert [p.name for p in node.links[1].parts] == ["Rotor front", "Rotor rear"]
        assert len(node.subcategories) == 1
        child = node.subcategories[0]
        assert child.name == "Brake Sensors"
        assert [link.name for link in child.links] == ["SensorX"]
        assert child.links[0].parts[0].name is None
        assert child.subcategories == []

    @pytest.mark.asyncio
    async def test_each_node_toggled_open_and_closed(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        """Each node shall be clicked exactly twice, children inside the parent's expansion."""
        brakes, sensors = _brakes(site)
        await doc.navigate(SUBMODEL_URL)

        await walker.walk(doc, brakes)

        assert brakes.toggles == 2
        assert sensors.toggles == 2
        assert not brakes.expanded and not sensors.expanded
        assert [click.node for click in doc.clicks] == [brakes, sensors, sensors, brakes]

    @pytest.mark.asyncio
    async def test_waits_for_settle_after_toggles(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        brakes, _ = _brakes(site)
        await doc.navigate(SUBMODEL_URL)

        await walker.walk(doc, brakes)

        assert doc.waits

    @pytest.mark.asyncio
    async def test_walk_twice_gives_same_tree(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        """After walk returns the node is collapsed, so a second walk sees the same tree."""
        brakes, _ = _brakes(site)
        await doc.navigate(SUBMODEL_URL)

        first = await walker.walk(doc, brakes)
        second = await walker.walk(doc, brakes)

        assert first.to_dict() == second.to_dict()
        assert brakes.toggles == 4


class TestLinkOrderAndFailures:
    @pytest.mark.asyncio
    async def test_link_order_independent_of_completion(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        """Links shall keep document order even when later fetches finish first."""
        urls = [f"https://autopiter.ru/goods/{n}" for n in ("a", "b", "c")]
        node = FakeNode("Filters", links=[FakeLink(n, u) for n, u in zip("ABC", urls)])
        site.add_page(SUBMODEL_URL, nodes=[node])
        for url, delay in zip(urls, (0.05, 0.02, 0.0)):
            site.add_page(url, data=detail_rows(url))
            site.delays[url] = delay
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert [link.name for link in result.links] == ["A", "B", "C"]
        assert [link.parts[0].name for link in result.links] == urls

    @pytest.mark.asyncio
    async def test_failed_detail_leaves_parts_absent(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        """A failing detail page shall only affect its own link."""
        urls = [f"https://autopiter.ru/goods/{n}" for n in ("a", "b", "c")]
        child = FakeNode("Pads")
        node = FakeNode("Brakes", links=[FakeLink(n, u) for n, u in zip("ABC", urls)], children=[child])
        site.add_page(SUBMODEL_URL, nodes=[node])
        site.add_page(urls[0], data=detail_rows("a"))
        site.add_page(urls[1], data=RuntimeError("Target closed"))
        site.add_page(urls[2], data=detail_rows("c"))
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert result.links[0].parts is not None
        assert result.links[1].parts is None
        assert result.links[2].parts is not None
        assert "parts" not in result.links[1].to_dict()
        assert [c.name for c in result.subcategories] == ["Pads"]
        assert walker.fetcher.failed == 1

    @pytest.mark.asyncio
    async def test_unreachable_detail_page(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        node = FakeNode("Brakes", links=[FakeLink("Gone", "https://autopiter.ru/goods/gone")])
        site.add_page(SUBMODEL_URL, nodes=[node])
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert result.links[0].parts is None
        assert site.open_sessions == 0

    @pytest.mark.asyncio
    async def test_links_without_href_are_skipped(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        node = FakeNode("Brakes", links=[FakeLink("Broken", None), FakeLink("PadSet", PADSET)])
        site.add_page(SUBMODEL_URL, nodes=[node])
        site.add_page(PADSET, data=detail_rows("Pad set"))
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert [link.name for link in result.links] == ["PadSet"]


    @pytest.mark.asyncio
    async def test_relative_href_resolves_against_page(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        node = FakeNode("Brakes", links=[FakeLink("PadSet", "padset")])
        site.add_page(SUBMODEL_URL, nodes=[node])
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert result.links[0].link == "https://autopiter.ru/nonoriginaldetails/audi/a4/padset"


class TestPartialNodes:
    @pytest.mark.asyncio
    async def test_error_reading_children_returns_partial_node(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        """An extraction error shall keep what was read and still collapse the node."""
        node = FakeNode("Engine", links=[FakeLink("PadSet", PADSET)], children=[FakeNode("Oil")], broken_children=True)
        site.add_page(SUBMODEL_URL, nodes=[node])
        site.add_page(PADSET, data=detail_rows("Pad set"))
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert result.name == "Engine"
        assert [link.name for link in result.links] == ["PadSet"]
        assert result.subcategories == []
        assert node.toggles == 2
        assert not node.expanded

    @pytest.mark.asyncio
    async def test_failed_expand_settle_still_collapses(self, site: FakeSite, walker: TreeWalker) -> None:
        """An error while waiting for the expanded node shall still click it closed."""

        class FlakyDocument(FakeDocument):
            failed = False

            async def query_all(self, scope, selector):
                if not self.failed:
                    self.failed = True
                    raise RuntimeError("Execution context was destroyed")
                return await super().query_all(scope, selector)

        node = FakeNode("Brakes", links=[FakeLink("PadSet", PADSET)])
        site.add_page(SUBMODEL_URL, nodes=[node])
        doc = FlakyDocument(site)
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert result.name == "Brakes"
        assert result.links == []
        assert node.toggles == 2
        assert not node.expanded

    @pytest.mark.asyncio
    async def test_node_without_label(
self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        node = FakeNode("Body", links=[FakeLink("Mirror", PADSET)], has_label=False)
        site.add_page(SUBMODEL_URL, nodes=[node])
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert result.name == "Body"
        assert result.links == []
        assert node.toggles == 0

    @pytest.mark.asyncio
    async def test_missing_title_gives_empty_name(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        node = FakeNode(None)
        site.add_page(SUBMODEL_URL, nodes=[node])
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk(doc, node)

        assert result.name == ""


class TestWalkPage:
    @pytest.mark.asyncio
    async def test_empty_tree(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        """A page without tree nodes shall give an empty list."""
        site.add_page(SUBMODEL_URL, nodes=[])
        await doc.navigate(SUBMODEL_URL)

        assert await walker.walk_page(doc) == []

    @pytest.mark.asyncio
    async def test_top_level_nodes_in_document_order(self, site: FakeSite, doc: FakeDocument, walker: TreeWalker) -> None:
        nodes = [FakeNode(name, children=[FakeNode(f"{name} inner")]) for name in ("Engine", "Brakes", "Body")]
        site.add_page(SUBMODEL_URL, nodes=nodes)
        await doc.navigate(SUBMODEL_URL)

        result = await walker.walk_page(doc)

        assert [c.name for c in result] == ["Engine", "Brakes", "Body"]
        assert [c.subcategories[0].name for c in result] == ["Engine inner", "Brakes inner", "Body inner"]
        assert all(n.toggles == 2 and not n.expanded for n in nodes)
