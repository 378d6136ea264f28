"""
Tests for the content normalizer and the heuristic extraction stage.
"""
from agents.generation.content_normalizer import (
    extract_slides,
    normalize_chart,
    normalize_charts,
    normalize_section,
    normalize_slide,
    normalize_slides,
)
from agents.generation.heuristic_extraction import coerce_list, split_text, split_title_body
from models.section import Section

from conftest import FakeMarkdownRenderer


class TestHeuristicExtraction:
    def test_split_text_on_newlines_bullets_and_hyphens(self):
        assert split_text("Intro\n- First\n- Second") == ["Intro", "First", "Second"]
        assert split_text("• Alpha • Beta") == ["Alpha", "Beta"]

    def test_split_text_keeps_hyphenated_words(self):
        assert split_text("Go-to-market plan") == ["Go-to-market plan"]

    def test_coerce_list_parses_json_lists(self):
        assert coerce_list('["a", "b"]') == ["a", "b"]
        assert coerce_list(None) == []
        assert coerce_list(5) == [5]

    def test_split_title_body(self):
        assert split_title_body("TAM: $5bn") == ("TAM", "$5bn")
        assert split_title_body("no separator here") == ("", "no separator here")


class TestNormalizeSection:
    def test_plain_string_becomes_description_and_points(self):
        section = normalize_section("Market is growing\n- Segment A\n- Segment B", 0)

        assert section.id == "section_0"
        assert section.title == "Section 1"
        assert section.description.startswith("Market is growing")
        assert section.keyPoints == ["Market is growing", "Segment A", "Segment B"]
        assert section.status == "draft"

    def test_inconsistent_key_names(self):
        section = normalize_section({"name": "Intro", "summary": "Short summary", "points": ["a", "b"]}, 2)

        assert section.title == "Intro"
        assert section.description == "Short summary"
        assert section.keyPoints == ["a", "b"]
        assert section.order == 2

    def test_bullets_alias_and_dict_items(self):
        section = normalize_section({
            "title": "Trends",
            "bullets": [{"title": "AI", "content": "Adoption doubles"}, {"text": "Regulation tightens"}],
        })

        assert section.keyPoints == ["AI: Adoption doubles", "Regulation tightens"]

    def test_nested_section_content_is_flattened(self):
        section = normalize_section({
            "id": "s9",
            "framework": "gap_analysis",
            "sectionContent": {"title": "Nested title", "keyPoints": ["k1"]},
        })

        assert section.id == "s9"
        assert section.title == "Nested title"
        assert section.keyPoints == ["k1"]
        assert section.framework == "gap_analysis"

    def test_locked_without_status_is_final(self):
        section = normalize_section({"id": "s1", "title": "Locked", "locked": True})
        assert section.status == "final"
        assert section.is_locked

    def test_invalid_status_defaults_to_draft(self):
        section = normalize_section({"id": "s1", "title": "T", "status": "weird"})
        assert section.status == "draft"

    def test_unrecognized_shapes_never_raise(self):
        assert normalize_section(None, 3).id == "section_3"
        assert normalize_section(None, 3).title == "Section 4"
        assert normalize_section(42).description == "42"
        assert normalize_section(["one", "two"]).keyPoints == ["one", "two"]

    def test_unknown_keys_are_kept(self):
        section = normalize_section({"id": "s1", "title": "T", "analystNote": "keep me"})
        assert section.model_extra["analystNote"] == "keep me"

    def test_pydantic_input_is_accepted(self):
        section = normalize_section(Section(id="s1", title="Model input", keyPoints=["x"]))
        assert section.title == "Model input"
        assert section.keyPoints == ["x"]

    def test_normalizing_canonical_section_is_idempotent(self):
        raw = {
            "id": "s1",
            "title": "Market Sizing",
            "description": "Opportunity",
            "keyPoints": ["TAM: $5bn"],
            "charts": [{"title": "Market", "config": {"type": "bar", "data": [1, 2]}}],
            "contentBlocks": [{"type": "Key Insights", "items": ["Insight one"]}],
            "slides": ["Slide text"],
            "locked": True,
            "lockedAt": "2024-01-01T00:00:00Z",
            "framework": "market_sizing",
            "analystNote": "kept",
        }

        once = normalize_section(raw, 0)
        twice = normalize_section(once.model_dump(), 0)

        assert twice == once

    def test_markdown_renderer_fills_html_and_charts(self):
        renderer = FakeMarkdownRenderer()
        section = normalize_section({"id": "s1", "title": "T", "markdown": "# Heading"}, 0, renderer)

        assert section.html == "<p>Heading</p>"
        assert len(section.charts) == 1
        assert renderer.calls == ["# Heading"]

    def test_existing_charts_win_over_rendered_ones(self):
        section = normalize_section(
            {"id": "s1", "title": "T", "markdown": "# Heading", "charts": [{"id": "mine", "config": {"a": 1}}]},
            0,
            FakeMarkdownRenderer(),
        )
        assert [c.id for c in section.charts] == ["mine"]


class TestSlidesAndCharts:
    def test_normalize_slide_variants(self):
        slide = normalize_slide({"heading": "Headline", "points": "a\nb"}, 0)
        assert slide.title == "Headline"
        assert slide.bullets == ["a", "b"]
        assert slide.layout == "title-2-columns"

        empty = normalize_slide(None, 2, "timeline")
        assert empty.title == "Slide 3"
        assert empty.layout == "timeline"

    def test_string_slide_is_split_into_bullets(self):
        slide = normalize_slide("First point\nSecond point", 0)
        assert slide.summary == "First point\nSecond point"
        assert slide.bullets == ["First point", "Second point"]

    def test_normalize_slides_accepts_wrapped_and_encoded_lists(self):
        assert len(normalize_slides({"slides": [{"title": "a"}, {"title": "b"}]})) == 2
        assert normalize_slides('[{"title": "encoded"}]')[0].title == "encoded"
        assert normalize_slides("not slides") == []

    def test_extract_slides_from_known_locations(self):
        assert extract_slides({"data": {"slides": [{"title": "x"}]}}) == [{"title": "x"}]
        assert extract_slides({"response": '{"slides": [{"title": "y"}]}'}) == [{"title": "y"}]
        assert extract_slides({"content": [{"title": "z"}]}) == [{"title": "z"}]
        assert extract_slides(None) == []
        assert extract_slides({"message": "nothing here"}) == []

    def test_chart_config_may_be_json_string(self):
        chart = normalize_chart({"title": "Growth", "config": '{"type": "line"}'}, 0)
        assert chart.id == "chart-1"
        assert chart.config == {"type": "line"}

    def test_chart_without_config_is_dropped(self, caplog):
        charts = normalize_charts([{"title": "broken"}, {"title": "ok", "config": {"a": 1}}])

        assert [c.title for c in charts] == ["ok"]
        assert charts[0].id == "chart-2"
        assert "Dropping chart 1" in caplog.text


class TestLooseInput:
    def test_charts_under_chart_data_are_picked_up(self):
        section = normalize_section({
            "id": "s1",
            "keyPoints": ["a"],
            "chartData": [{"id": "c1", "config": {"type": "bar", "data": [1, 2]}}],
        })

        assert [c.id for c in section.charts] == ["c1"]
        assert "chartData" not in section.model_extra

    def test_later_chart_locations_are_tried_when_earlier_ones_are_unusable(self):
        section = normalize_section({
            "id": "s1",
            "charts": [{"title": "no config"}],
            "visualizations": '[{"title": "Share", "config": {"type": "pie"}}]',
        })

        assert [c.title for c in section.charts] == ["Share"]

    def test_generation_context_must_be_an_object(self):
        assert normalize_section({"id": "s1", "slidesGenerationContext": "gen by agent"}).slidesGenerationContext is None
        assert normalize_section(
            {"id": "s1", "slides_generation_context": '{"layout": "full-width"}'}
        ).slidesGenerationContext == {"layout": "full-width"}

    def test_unparseable_numbers_fall_back(self):
        section = normalize_section({"id": "s1", "order": "²", "estimatedSlides": "²"}, 4)

        assert section.order == 4
        assert section.estimatedSlides is None
        assert normalize_section({"id": "s1", "order": float("inf")}, 2).order == 2
        assert normalize_section({"id": "s1", "order": float("nan")}, 1).order == 1

    def test_string_booleans_for_locked(self):
        unlocked = normalize_section({"id": "s1", "locked": "false", "lockedBy": "ana", "lockedAt": "2024-01-01T00:00:00Z"})
        locked = normalize_section({"id": "s1", "locked": "true", "lockedBy": "ana"})

        assert not unlocked.locked
        assert unlocked.status == "draft"
        assert unlocked.lockedBy is None
        assert unlocked.lockedAt is None
        assert locked.locked
        assert locked.lockedBy == "ana"

    def test_zero_estimated_slides_is_kept(self):
        once = normalize_section({"id": "s1", "title": "T", "estimatedSlides": 0})

        assert once.estimatedSlides == 0
        assert normalize_section(once.model_dump()) == once

    def test_estimated_pages_alias(self):
        assert normalize_section({"id": "s1", "estimatedPages": "3"}).estimatedSlides == 3
