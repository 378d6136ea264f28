"""
Content normalizer.

Turns raw section/slide payloads of any shape (strings, lists, objects with
inconsistent keys, pydantic models) into canonical Section / Slide records.
Never raises on bad input: unknown shapes degrade to heuristic text splitting.
"""

from datetime import datetime
from typing import Dict, Any, List, Optional

from pydantic import BaseModel

from agents.core.interfaces import IMarkdownRenderer
from agents.generation.heuristic_extraction import (
    coerce_list,
    first_text,
    parse_json,
    split_text,
    text_list,
)
from models.section import Chart, ContentBlock, LayoutPreview, Section, Slide
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

DEFAULT_SLIDE_LAYOUT = "title-2-columns"
DEFAULT_CONTENT_BLOCK_TYPE = "Content Block"
VALID_STATUSES = ("draft", "final", "loading")

# Keys that are canonical fields; everything else on a raw section is kept as an extra
_CANONICAL_KEYS = set(Section.model_fields.keys())
_ALIAS_KEYS = {
    "_id", "name", "heading", "summary", "content", "overview", "points", "bullets",
    "keyMessages", "keyInsights", "sectionContent", "layout_applied_at", "slides_generated_at",
    "slides_generation_context", "estimatedPages", "created_at", "chartData", "chart_data", "visualizations",
}

# Where raw sections carry charts, in lookup order
CHART_SOURCE_KEYS = ("charts", "chartData", "chart_data", "visualizations")

_TRUE_STRINGS = ("true", "yes", "1", "locked")


def _to_plain(raw: Any) -> Any:
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, str):
        parsed = parse_json(raw)
        if isinstance(parsed, (dict, list)):
            return parsed
    return raw


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _to_int(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return default
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


# ============= Slides =============

def normalize_slide(raw: Any, index: int = 0, fallback_layout: str = DEFAULT_SLIDE_LAYOUT) -> Slide:
    """Normalize one slide payload. Strings become a summary plus split bullets."""
    fallback_layout = fallback_layout or DEFAULT_SLIDE_LAYOUT
    raw = _to_plain(raw)

    if raw is None or raw == "":
        return Slide(title=f"Slide {index + 1}", layout=fallback_layout)

    if isinstance(raw, str):
        text = raw.strip()
        return Slide(
            title=f"Slide {index + 1}",
            summary=text,
            bullets=split_text(text),
            layout=fallback_layout
        )

    if isinstance(raw, list):
        bullets = text_list(raw)
        return Slide(title=f"Slide {index + 1}", bullets=bullets, layout=fallback_layout)

    if not isinstance(raw, dict):
        return Slide(title=f"Slide {index + 1}", summary=_to_text(raw), layout=fallback_layout)

    bullets = text_list(raw.get("bullets") or raw.get("points") or raw.get("keyPoints"))
    summary = first_text(raw.get("summary"), raw.get("description"), raw.get("content"), raw.get("paragraphs"))

    return Slide(
        title=first_text(raw.get("title"), raw.get("heading"), raw.get("name")) or f"Slide {index + 1}",
        subtitle=first_text(raw.get("subtitle"), raw.get("subheading")),
        summary=summary,
        bullets=bullets,
        notes=first_text(raw.get("notes"), raw.get("speakerNotes")),
        layout=first_text(raw.get("layout"), raw.get("format")) or fallback_layout
    )


def normalize_slides(raw: Any, fallback_layout: str = DEFAULT_SLIDE_LAYOUT) -> List[Slide]:
    """Normalize a list of slides, a JSON-encoded list, or a {slides: [...]} object."""
    raw = _to_plain(raw)
    if isinstance(raw, dict):
        raw = raw.get("slides", [])
    if not isinstance(raw, list):
        return []
    return [normalize_slide(slide, index, fallback_layout) for index, slide in enumerate(raw)]


def extract_slides(payload: Any) -> List[Any]:
    """Find the raw slide list inside an agent response of unknown shape."""
    if not payload:
        return []

    payload = _to_plain(payload)
    data = payload.get("data") if isinstance(payload, dict) else None
    response = payload.get("response") if isinstance(payload, dict) else None

    candidates = [
        data.get("slides") if isinstance(data, dict) else None,
        payload.get("slides") if isinstance(payload, dict) else None,
        response.get("slides") if isinstance(response, dict) else None,
        response,
        payload.get("content") if isinstance(payload, dict) else None,
        payload,
    ]

    for candidate in candidates:
        if not candidate:
            continue
        if isinstance(candidate, list):
            return candidate
        if isinstance(candidate, str):
            parsed = parse_json(candidate)
            if isinstance(parsed, list):
                return parsed
            if isinstance(parsed, dict) and isinstance(parsed.get("slides"), list):
                return parsed["slides"]
            continue
        if isinstance(candidate, dict) and isinstance(candidate.get("slides"), list):
            return candidate["slides"]

    return []


# ============= Charts =============

def normalize_chart(raw: Any, index: int = 0) -> Optional[Chart]:
    """Normalize one chart. Returns None when no configuration can be extracted."""
    raw = _to_plain(raw)
    if not isinstance(raw, dict):
        return None

    config = raw.get("config")
    if isinstance(config, str):
        config = parse_json(config)
    if not isinstance(config, dict) or not config:
        # Bare chart payloads carry their data at the top level
        if isinstance(raw.get("data"), (list, dict)) and raw.get("data"):
            config = {"data": raw["data"]}
            if raw.get("labels"):
                config["labels"] = raw["labels"]
        else:
            return None

    attributes = raw.get("attributes")
    return Chart(
        id=_to_text(raw.get("id")) or f"chart-{index + 1}",
        title=_to_text(raw.get("title")),
        caption=_to_text(raw.get("caption")),
        source=_to_text(raw.get("source")),
        config=config,
        attributes=attributes if isinstance(attributes, dict) else {},
        type=_to_text(raw.get("type") or raw.get("chartType")) or "bar"
    )


def normalize_charts(raw: Any) -> List[Chart]:
    """Normalize a chart list; unusable charts are dropped with a warning."""
    charts = []
    for index, item in enumerate(coerce_list(_to_plain(raw))):
        chart = normalize_chart(item, index)
        if chart is None:
            logger.warning(f"[NORMALIZER] Dropping chart {index + 1}: no extractable configuration")
            continue
        charts.append(chart)
    return charts


# ============= Sections =============

def _content_blocks(raw: Any) -> List[ContentBlock]:
    blocks = []
    for block in coerce_list(_to_plain(raw)):
        block = _to_plain(block)
        if isinstance(block, dict):
            blocks.append(ContentBlock(
                type=_to_text(block.get("type")) or DEFAULT_CONTENT_BLOCK_TYPE,
                title=_to_text(block.get("title")),
                items=text_list(block.get("items"))
            ))
        elif isinstance(block, (str, list)):
            items = text_list(block)
            if items:
                blocks.append(ContentBlock(items=items))
    return blocks


def _layout_preview(raw: Any) -> Optional[LayoutPreview]:
    raw = _to_plain(raw)
    if not isinstance(raw, dict):
        return None
    try:
        return LayoutPreview.model_validate(raw)
    except ValueError as e:
        logger.warning(f"[NORMALIZER] Ignoring malformed layoutPreview: {e}")
        return None


def _section_charts(raw: Dict[str, Any]) -> List[Chart]:
    """First location that yields usable charts"""
    for key in CHART_SOURCE_KEYS:
        if not raw.get(key):
            continue
        charts = normalize_charts(raw[key])
        if charts:
            return charts
    return []


def _first_present(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _generation_context(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    context = _to_plain(_first_present(raw, "slidesGenerationContext", "slides_generation_context"))
    if isinstance(context, dict) and context:
        return context
    return None


def _flatten(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Hoist a nested `sectionContent` object; top-level keys win."""
    nested = raw.get("sectionContent")
    if isinstance(nested, dict):
        merged = dict(nested)
        merged.update({k: v for k, v in raw.items() if k != "sectionContent" and v not in (None, "", [], {})})
        return merged
    return raw


def normalize_section(
    raw: Any,
    index: int = 0,
    markdown_renderer: Optional[IMarkdownRenderer] = None
) -> Section:
    """
    Normalize a raw section payload into a canonical Section.

    Deterministic and side-effect free: normalizing an already-canonical
    section yields an identical record.
    """
    raw = _to_plain(raw)

    if raw is None or raw == "":
        raw = {}
    elif isinstance(raw, str):
        raw = {"description": raw.strip(), "keyPoints": split_text(raw) if len(split_text(raw)) > 1 else []}
    elif isinstance(raw, list):
        raw = {"keyPoints": raw}
    elif not isinstance(raw, dict):
        raw = {"description": _to_text(raw)}

    raw = _flatten(raw)

    order = _to_int(raw.get("order"), index)
    layout = _to_text(raw.get("layout")) or None
    locked = _to_bool(raw.get("locked", False))
    status = raw.get("status") if raw.get("status") in VALID_STATUSES else ("final" if locked else "draft")

    key_points = text_list(raw.get("keyPoints") or raw.get("points") or raw.get("bullets") or raw.get("keyMessages"))

    markdown = raw.get("markdown") if isinstance(raw.get("markdown"), str) else ""
    html = raw.get("html") if isinstance(raw.get("html"), str) else ""
    charts = _section_charts(raw)

    if markdown.strip() and not html.strip() and markdown_renderer is not None:
        rendered = markdown_renderer.render(markdown)
        rendered = rendered if isinstance(rendered, dict) else {}
        html = rendered.get("html") if isinstance(rendered.get("html"), str) else ""
        if not charts:
            charts = normalize_charts(rendered.get("charts"))

    framework_data = raw.get("frameworkData")
    if isinstance(framework_data, str):
        framework_data = parse_json(framework_data)

    extras = {
        key: value for key, value in raw.items()
        if isinstance(key, str) and key not in _CANONICAL_KEYS and key not in _ALIAS_KEYS
    }

    return Section(
        id=_to_text(raw.get("id") or raw.get("_id")) or f"section_{order}",
        title=first_text(raw.get("title"), raw.get("name"), raw.get("heading")) or f"Section {order + 1}",
        description=first_text(raw.get("description"), raw.get("summary"), raw.get("content"), raw.get("overview")),
        markdown=markdown,
        html=html,
        charts=charts,
        keyPoints=key_points,
        contentBlocks=_content_blocks(raw.get("contentBlocks")),
        slides=normalize_slides(raw.get("slides"), layout or DEFAULT_SLIDE_LAYOUT),
        layout=layout,
        layoutPreview=_layout_preview(raw.get("layoutPreview")),
        locked=locked,
        status=status,
        framework=_to_text(raw.get("framework")) or None,
        order=order,
        insights=text_list(raw.get("insights") or raw.get("keyInsights")),
        citations=[c for c in coerce_list(raw.get("citations")) if c],
        sources=text_list(raw.get("sources")),
        takeaway=_to_text(raw.get("takeaway")),
        frameworkData=framework_data if isinstance(framework_data, dict) else None,
        estimatedSlides=_to_int(_first_present(raw, "estimatedSlides", "estimatedPages"), None),
        lockedAt=_to_datetime(raw.get("lockedAt")) if locked else None,
        lockedBy=(_to_text(raw.get("lockedBy")) or None) if locked else None,
        layoutAppliedAt=_to_datetime(raw.get("layoutAppliedAt") or raw.get("layout_applied_at")),
        slidesGeneratedAt=_to_datetime(raw.get("slidesGeneratedAt") or raw.get("slides_generated_at")),
        slidesGenerationContext=_generation_context(raw),
        updated_at=_to_datetime(raw.get("updated_at")),
        **extras
    )


def normalize_sections(raw_sections: Any, markdown_renderer: Optional[IMarkdownRenderer] = None) -> List[Section]:
    """Normalize a section list (or JSON-encoded list)."""
    return [
        normalize_section(raw, index, markdown_renderer)
        for index, raw in enumerate(coerce_list(_to_plain(raw_sections)))
    ]
