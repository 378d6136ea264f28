"""
Tests for distributing section content into layout slots.
"""
import pytest

from agents.generation.content_distributor import FLOW_PLACEHOLDER_STEPS, ContentDistributor
from agents.generation.layout_catalog import GRID_PLACEHOLDER_LABELS
from models.layout import StructuralType
from models.section import Chart, Section, Slide


@pytest.fixture
def distributor():
    return ContentDistributor()


def _section(**overrides) -> Section:
    fields = {"id": "s1", "title": "Section"}
    fields.update(overrides)
    return Section(**fields)


@pytest.mark.parametrize("count,placeholders", [(0, 4), (1, 3), (6, 0)])
def test_grid_always_has_four_quadrants(distributor, count, placeholders):
    section = _section(
        framework="competitive_landscape",
        keyPoints=[f"Competitor {i}: detail" for i in range(count)]
    )

    tree = distributor.render(section, "bcg-matrix")

    assert tree.structuralType == StructuralType.GRID
    assert len(tree.slots) == 4
    assert all(len(slot.items) == 1 for slot in tree.slots)
    assert sum(slot.items[0].placeholder for slot in tree.slots) == placeholders
    assert [slot.label for slot in tree.slots] == GRID_PLACEHOLDER_LABELS
    if count > 4:
        assert tree.warnings == ["2 item(s) beyond the four quadrants were omitted"]


def test_grid_uses_description_for_empty_first_quadrant(distributor):
    tree = distributor.render(_section(framework="competitive_landscape"), "bcg-matrix")
    assert tree.slots[0].items[0].placeholder

    described = _section(framework="competitive_landscape", description="Crowded market")
    tree = distributor.render(described, "bcg-matrix")
    assert tree.slots[0].items[0].body == "Crowded market"
    assert not tree.slots[0].items[0].placeholder


def test_two_columns_put_evidence_on_the_right(distributor):
    section = _section(
        framework="market_sizing",
        keyPoints=["TAM: $5bn", "SAM: $2bn", "SOM: $300m"],
        insights=["Growth concentrates in APAC"],
        citations=[{"url": "https://example.com/report"}],
        charts=[Chart(id="c1", config={"type": "bar"})]
    )

    tree = distributor.render(section, "title-2-columns")
    left, right = tree.slots

    assert [item.title for item in left.items] == ["TAM", "SAM", "SOM"]
    assert [item.kind for item in right.items] == ["insight", "citation"]
    assert right.items[1].body == "https://example.com/report"
    assert [chart.id for chart in right.charts] == ["c1"]
    assert left.charts == []


def test_two_columns_balance_primary_without_evidence(distributor):
    section = _section(framework="market_sizing", keyPoints=["a", "b", "c"])

    left, right = distributor.render(section, "title-2-columns").slots

    assert [item.body for item in left.items] == ["a", "b"]
    assert [item.body for item in right.items] == ["c"]


def test_three_columns_chunk_in_order(distributor):
    section = _section(
        framework="industry_trends",
        keyPoints=[f"Trend {i}" for i in range(7)],
        charts=[Chart(id="c1", config={"type": "line"})],
        insights=["Not shown"]
    )

    tree = distributor.render(section, "three-columns")

    assert [len(slot.items) for slot in tree.slots] == [3, 3, 1]
    assert [item.body for slot in tree.slots for item in slot.items] == [f"Trend {i}" for i in range(7)]
    assert [chart.id for chart in tree.slots[2].charts] == ["c1"]
    assert tree.warnings == ["1 insight/citation item(s) not shown in column layout"]


def test_empty_flow_gets_placeholder_steps(distributor):
    tree = distributor.render(_section(framework="recommendations"), "process-flow")

    assert [slot.items[0].title for slot in tree.slots] == [title for title, _ in FLOW_PLACEHOLDER_STEPS]
    assert all(slot.items[0].placeholder for slot in tree.slots)


def test_empty_timeline_warns_instead_of_inventing(distributor):
    tree = distributor.render(_section(framework="product_roadmap"), "timeline")

    assert tree.slots == []
    assert tree.warnings == ["No content available for timeline milestones"]


def test_sequence_keeps_first_four_items(distributor):
    section = _section(framework="product_roadmap", keyPoints=[f"Q{i}: milestone" for i in range(1, 7)])

    tree = distributor.render(section, "timeline")

    assert [slot.items[0].title for slot in tree.slots] == ["Q1", "Q2", "Q3", "Q4"]
    assert tree.warnings == ["2 item(s) beyond 4 steps were omitted"]


def test_slides_take_precedence_over_key_points(distributor):
    section = _section(
        framework="market_sizing",
        keyPoints=["ignored"],
        slides=[Slide(title="First", bullets=["x"]), Slide(title="Second", summary="y")]
    )

    left, right = distributor.render(section, "title-2-columns").slots

    assert [item.title for item in left.items + right.items] == ["First", "Second"]
    assert all(item.kind == "slide" for item in left.items + right.items)


def test_framework_data_beats_key_points(distributor):
    section = _section(
        framework="competitive_landscape",
        keyPoints=["ignored"],
        frameworkData={"items": [{"name": "Acme", "description": "Market leader"}]}
    )

    tree = distributor.render(section, "bcg-matrix")

    assert tree.slots[0].items[0].title == "Acme"
    assert tree.slots[0].items[0].kind == "framework"


def test_single_column_skips_description_fragments_when_content_exists(distributor):
    section = _section(
        framework="market_sizing",
        description="Line one\nLine two",
        keyPoints=["Point"],
        contentBlocks=[{"type": "Key Insights", "items": ["Block item"]}]
    )

    slot = distributor.render(section, "full-width").slots[0]

    assert [item.kind for item in slot.items] == ["key_point", "block"]


def test_single_column_uses_fragments_for_plain_description(distributor):
    slot = distributor.render(_section(description="Line one\nLine two"), "full-width").slots[0]
    assert [item.body for item in slot.items] == ["Line one", "Line two"]


def test_charts_found_in_framework_data_json(distributor):
    section = _section(
        framework="market_sizing",
        keyPoints=["a"],
        frameworkData={"chartData": '[{"title": "Share", "config": {"type": "pie"}}]'}
    )

    slot = distributor.render(section, "full-width").slots[0]

    assert [chart.title for chart in slot.charts] == ["Share"]


def test_incompatible_layout_falls_back(distributor):
    section = _section(framework="market_sizing", layout="bcg-matrix", keyPoints=["a"])

    tree = distributor.render(section)

    assert tree.layoutId == "title-2-columns"
    assert tree.requestedLayout == "bcg-matrix"
    assert tree.fellBack
    assert tree.warnings


def test_raw_payload_is_normalized_first(distributor):
    tree = distributor.render({"name": "Raw", "points": ["one", "two"]}, "full-width")

    assert tree.header.title == "Raw"
    assert [item.body for item in tree.slots[0].items] == ["one", "two"]


def test_framework_citation_string_is_one_citation(distributor):
    section = _section(
        framework="market_sizing",
        frameworkData={"items": ["x"], "citations": "IBISWorld 2024"}
    )

    left, right = distributor.render(section, "title-2-columns").slots

    assert [item.body for item in right.items if item.kind == "citation"] == ["IBISWorld 2024"]


def test_charts_from_section_chart_data_are_rendered(distributor):
    section = {
        "id": "s1",
        "framework": "market_sizing",
        "keyPoints": ["a"],
        "chartData": [{"id": "c1", "config": {"type": "bar", "data": [1, 2]}}],
    }

    left, right = distributor.render(section, "title-2-columns").slots

    assert [chart.id for chart in right.charts] == ["c1"]
