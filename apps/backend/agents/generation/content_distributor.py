"""
Content Distributor

Allocates a canonical section's content into the structural slots of a layout.

Primary content is taken from the first non-empty source in precedence order:
    1. explicit slides
    2. framework-specific content (frameworkData / rendered html)
    3. keyPoints
    4. contentBlocks items
    5. markdown / html
    6. description split into fragments
Charts, insights and citations are supporting evidence and are placed by the
layout strategy (right column for two-column layouts, appended elsewhere).
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from agents.generation.content_normalizer import normalize_charts, normalize_section
from agents.generation.heuristic_extraction import (
    coerce_list,
    first_text,
    item_to_text,
    parse_json,
    split_text,
    split_title_body,
    text_list,
)
from agents.generation.layout_catalog import (
    FALLBACK_LAYOUT,
    GRID_PLACEHOLDER_LABELS,
    LayoutCatalog,
    get_layout_catalog,
)
from models.layout import (
    RenderHeader,
    RenderItem,
    RenderSlot,
    RenderTree,
    StructuralType,
)
from models.section import Chart, Section
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

MAX_SEQUENCE_NODES = 4
GRID_QUADRANTS = 4

FLOW_PLACEHOLDER_STEPS = [
    ("Assess", "Understand the current situation"),
    ("Design", "Define the target approach"),
    ("Implement", "Execute the plan"),
    ("Review", "Measure outcomes and adjust"),
]

# frameworkData keys that carry the specialist's primary content, in lookup order
FRAMEWORK_CONTENT_KEYS = (
    "items", "keyPoints", "findings", "segments", "options",
    "phases", "steps", "recommendations", "points",
)

# Where charts may live, in lookup order
CHART_CANDIDATE_KEYS = ("charts", "chartData", "chart_data", "visualizations")


class ContentDistributor:
    """
    Renders sections into layout slot trees.

    Stateless apart from the catalog it validates layouts against.
    """

    def __init__(self, catalog: Optional[LayoutCatalog] = None):
        self.catalog = catalog or get_layout_catalog()

    def render(self, section: Any, layout_id: Optional[str] = None) -> RenderTree:
        """
        Render a section with the requested layout.

        Unsupported or unknown layouts fall back to the section's recommended
        layout; `RenderTree.fellBack` records that it happened.
        """
        if not isinstance(section, Section):
            section = normalize_section(section)

        resolved, fell_back = self.catalog.resolve_layout(section, layout_id)
        layout = self.catalog.get_layout(resolved) or self.catalog.get_layout(FALLBACK_LAYOUT)

        warnings: List[str] = []
        if fell_back:
            warnings.append(
                f"Layout '{layout_id or section.layout}' is not available for this section; using '{layout.id}'"
            )

        sources = self._content_sources(section)
        charts = self._select_charts(section)
        supporting = self._supporting_items(section)

        strategy = {
            StructuralType.SINGLE_COLUMN: self._single_column,
            StructuralType.MULTI_COLUMN: self._multi_column,
            StructuralType.GRID: self._grid,
            StructuralType.TIMELINE: self._sequence,
            StructuralType.FLOW: self._sequence,
        }[layout.structuralType]

        slots = strategy(layout, section, sources, charts, supporting, warnings)

        logger.debug(
            f"[DISTRIBUTOR] Rendered section {section.id} with '{layout.id}': "
            f"{len(slots)} slots, {len(charts)} charts"
        )

        return RenderTree(
            sectionId=section.id,
            layoutId=layout.id,
            requestedLayout=layout_id or section.layout,
            fellBack=fell_back,
            structuralType=layout.structuralType,
            header=RenderHeader(
                title=section.title,
                subtitle=section.takeaway,
                description=section.description
            ),
            slots=slots,
            warnings=warnings
        )

    # ============= Content extraction =============

    def _content_sources(self, section: Section) -> List[Tuple[str, List[RenderItem]]]:
        """All content sources in precedence order (empty ones omitted)"""
        sources = [
            ("slide", self._slide_items(section)),
            ("framework", self._framework_items(section)),
            ("key_point", [self._text_item(point, "key_point") for point in section.keyPoints]),
            ("block", self._block_items(section)),
            ("document", self._document_items(section)),
            ("fragment", [RenderItem(body=fragment, kind="fragment") for fragment in split_text(section.description)]),
        ]
        return [(kind, items) for kind, items in sources if items]

    @staticmethod
    def _primary(sources: List[Tuple[str, List[RenderItem]]]) -> List[RenderItem]:
        return list(sources[0][1]) if sources else []

    @staticmethod
    def _all_content(sources: List[Tuple[str, List[RenderItem]]]) -> List[RenderItem]:
        """Every source in order; description fragments only when nothing else exists"""
        items = []
        for kind, source_items in sources:
            if kind == "fragment" and items:
                continue
            items.extend(source_items)
        return items

    @staticmethod
    def _text_item(text: str, kind: str) -> RenderItem:
        title, body = split_title_body(text)
        return RenderItem(title=title, body=body, kind=kind)

    def _slide_items(self, section: Section) -> List[RenderItem]:
        return [
            RenderItem(title=slide.title, body=slide.summary, bullets=list(slide.bullets), kind="slide")
            for slide in section.slides
            if slide.title or slide.summary or slide.bullets
        ]

    def _framework_items(self, section: Section) -> List[RenderItem]:
        if not section.framework:
            return []

        data = section.frameworkData or {}
        for key in FRAMEWORK_CONTENT_KEYS:
            values = data.get(key)
            if not values:
                continue
            items = []
            for value in values if isinstance(values, list) else [values]:
                if isinstance(value, dict):
                    title = first_text(value.get("title"), value.get("name"), value.get("label"))
                    body = first_text(value.get("content"), value.get("description"), value.get("summary"))
                    bullets = text_list(value.get("bullets") or value.get("points"))
                    if title or body or bullets:
                        items.append(RenderItem(title=title, body=body, bullets=bullets, kind="framework"))
                else:
                    text = item_to_text(value)
                    if text:
                        items.append(self._text_item(text, "framework"))
            if items:
                return items

        if section.html.strip():
            return [RenderItem(body=section.html, kind="framework")]
        return []

    def _block_items(self, section: Section) -> List[RenderItem]:
        items = []
        for block in section.contentBlocks:
            for entry in block.items:
                title, body = split_title_body(entry)
                items.append(RenderItem(title=title or block.title, body=body, kind="block"))
        return items

    def _document_items(self, section: Section) -> List[RenderItem]:
        if section.markdown.strip():
            return [RenderItem(body=section.markdown, kind="markdown")]
        # Framework sections surface their html as framework content
        if section.html.strip() and not section.framework:
            return [RenderItem(body=section.html, kind="html")]
        return []

    def _supporting_items(self, section: Section) -> List[RenderItem]:
        insights = list(section.insights)
        citations = list(section.citations)

        # Framework specialists ship their own evidence
        if section.framework and section.frameworkData:
            insights.extend(text_list(section.frameworkData.get("insights")))
            citations.extend(coerce_list(section.frameworkData.get("citations")))

        items = [self._text_item(insight, "insight") for insight in insights]
        for citation in citations:
            text = citation if isinstance(citation, str) else item_to_text(citation) or _citation_text(citation)
            if text:
                items.append(RenderItem(body=text, kind="citation"))
        return items

    def _select_charts(self, section: Section) -> List[Chart]:
        """First non-empty, parseable chart list among the candidate locations"""
        if section.charts:
            return list(section.charts)

        containers: List[Dict[str, Any]] = []
        if section.frameworkData:
            containers.append(section.frameworkData)
        containers.append(section.model_extra or {})

        for container in containers:
            for key in CHART_CANDIDATE_KEYS:
                candidate = _chart_list(container.get(key))
                if not candidate:
                    continue
                charts = normalize_charts(candidate)
                if charts:
                    return charts
        return []

    # ============= Layout strategies =============

    def _single_column(self, layout, section, sources, charts, supporting, warnings) -> List[RenderSlot]:
        meta = layout.slotMetadata[0]
        return [RenderSlot(
            index=0,
            role=meta["role"],
            label=meta["label"],
            items=self._all_content(sources) + supporting,
            charts=charts
        )]

    def _multi_column(self, layout, section, sources, charts, supporting, warnings) -> List[RenderSlot]:
        primary = self._primary(sources)

        if layout.slotCount == 2:
            if charts or supporting:
                columns = [primary, supporting]
                column_charts = [[], charts]
            else:
                # Nothing to put on the evidence side: balance primary content instead
                split = math.ceil(len(primary) / 2)
                columns = [primary[:split], primary[split:]]
                column_charts = [[], []]
        else:
            columns = _chunk(primary, layout.slotCount)
            column_charts = [[] for _ in columns]
            if charts:
                column_charts[-1] = charts
            if supporting:
                warnings.append(f"{len(supporting)} insight/citation item(s) not shown in column layout")

        return [
            RenderSlot(
                index=index,
                role=layout.slotMetadata[index]["role"],
                label=layout.slotMetadata[index]["label"],
                items=items,
                charts=column_charts[index]
            )
            for index, items in enumerate(columns)
        ]

    def _grid(self, layout, section, sources, charts, supporting, warnings) -> List[RenderSlot]:
        primary = self._primary(sources)
        if len(primary) > GRID_QUADRANTS:
            warnings.append(f"{len(primary) - GRID_QUADRANTS} item(s) beyond the four quadrants were omitted")

        slots = []
        for index in range(GRID_QUADRANTS):
            label = GRID_PLACEHOLDER_LABELS[index]
            if index < len(primary):
                item = primary[index]
            elif index == 0 and section.description:
                item = RenderItem(title=label, body=section.description, kind="fragment")
            else:
                item = RenderItem(title=label, kind="placeholder", placeholder=True)
            slots.append(RenderSlot(
                index=index,
                role=layout.slotMetadata[index]["role"],
                label=label,
                items=[item],
                charts=charts if index == GRID_QUADRANTS - 1 else []
            ))
        return slots

    def _sequence(self, layout, section, sources, charts, supporting, warnings) -> List[RenderSlot]:
        primary = self._primary(sources)
        nodes = primary[:MAX_SEQUENCE_NODES]

        if len(primary) > MAX_SEQUENCE_NODES:
            warnings.append(f"{len(primary) - MAX_SEQUENCE_NODES} item(s) beyond {MAX_SEQUENCE_NODES} steps were omitted")

        if not nodes and layout.structuralType == StructuralType.FLOW:
            nodes = [
                RenderItem(title=title, body=body, kind="placeholder", placeholder=True)
                for title, body in FLOW_PLACEHOLDER_STEPS
            ]
        elif not nodes:
            warnings.append("No content available for timeline milestones")

        slots = [
            RenderSlot(
                index=index,
                role=layout.slotMetadata[index]["role"],
                label=layout.slotMetadata[index]["label"],
                items=[node]
            )
            for index, node in enumerate(nodes)
        ]
        if slots and charts:
            slots[-1].charts = charts
        return slots


def _chunk(items: List[RenderItem], columns: int) -> List[List[RenderItem]]:
    """Split into `columns` lists of ceil(n/columns) items, preserving order"""
    size = max(1, math.ceil(len(items) / columns))
    return [items[i * size:(i + 1) * size] for i in range(columns)]


def _chart_list(value: Any) -> Optional[List[Any]]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        parsed = parse_json(value)
        if isinstance(parsed, list):
            return parsed
        if isinstance(parsed, dict):
            return [parsed]
    if isinstance(value, dict):
        if isinstance(value.get("charts"), list):
            return value["charts"]
        return [value]
    return None


def _citation_text(citation: Any) -> str:
    if isinstance(citation, dict):
        return str(citation.get("url") or citation.get("source") or "").strip()
    return ""


# Global instance
_distributor: Optional[ContentDistributor] = None


def get_content_distributor() -> ContentDistributor:
    """Get or create the global distributor"""
    global _distributor
    if _distributor is None:
        _distributor = ContentDistributor()
    return _distributor


def render(section: Any, layout_id: Optional[str] = None) -> RenderTree:
    return get_content_distributor().render(section, layout_id)
