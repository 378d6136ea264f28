"""
Layout Catalog
Static registry of layout templates plus the framework -> layout compatibility matrix
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from models.layout import LayoutDefinition, StructuralType
from models.section import Section
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

DEFAULT_LAYOUT = "default"
FALLBACK_LAYOUT = "full-width"

GRID_PLACEHOLDER_LABELS = ["High Priority", "Medium Priority", "Opportunities", "Risks"]

_LAYOUTS: List[LayoutDefinition] = [
    LayoutDefinition(
        id="title-2-columns",
        name="Title with 2 Columns",
        description="Primary content on the left, evidence (charts, insights, citations) on the right",
        structuralType=StructuralType.MULTI_COLUMN,
        slotCount=2,
        slotMetadata=[
            {"role": "primary", "label": "Key Content"},
            {"role": "supporting", "label": "Supporting Evidence"},
        ],
    ),
    LayoutDefinition(
        id="bcg-matrix",
        name="BCG Matrix",
        description="2x2 grid of quadrants",
        structuralType=StructuralType.GRID,
        slotCount=4,
        slotMetadata=[
            {"role": f"quadrant-{i + 1}", "label": label}
            for i, label in enumerate(GRID_PLACEHOLDER_LABELS)
        ],
    ),
    LayoutDefinition(
        id="three-columns",
        name="Three Columns",
        description="Content split evenly across three columns",
        structuralType=StructuralType.MULTI_COLUMN,
        slotCount=3,
        slotMetadata=[{"role": f"column-{i + 1}", "label": f"Column {i + 1}"} for i in range(3)],
    ),
    LayoutDefinition(
        id="full-width",
        name="Full Width",
        description="Single column with all content in priority order",
        structuralType=StructuralType.SINGLE_COLUMN,
        slotCount=1,
        slotMetadata=[{"role": "main", "label": "Content"}],
    ),
    LayoutDefinition(
        id="timeline",
        name="Timeline",
        description="Four ordered milestones",
        structuralType=StructuralType.TIMELINE,
        slotCount=4,
        slotMetadata=[{"role": f"phase-{i + 1}", "label": f"Phase {i + 1}"} for i in range(4)],
    ),
    LayoutDefinition(
        id="process-flow",
        name="Process Flow",
        description="Four sequential steps",
        structuralType=StructuralType.FLOW,
        slotCount=4,
        slotMetadata=[{"role": f"step-{i + 1}", "label": f"Step {i + 1}"} for i in range(4)],
    ),
]

# Catalog order as offered to users; "default" defers to the recommended layout
CATALOG_ORDER = [DEFAULT_LAYOUT] + [layout.id for layout in _LAYOUTS]

# First entry is the recommended layout for the framework
FRAMEWORK_LAYOUTS: Dict[str, List[str]] = {
    "market_sizing": ["title-2-columns", "full-width", "three-columns"],
    "competitive_landscape": ["bcg-matrix", "title-2-columns", "full-width"],
    "industry_trends": ["three-columns", "full-width", "timeline"],
    "capability_benchmark": ["title-2-columns", "bcg-matrix", "full-width"],
    "competitor_deep_dive": ["title-2-columns", "three-columns", "full-width"],
    "strategic_options": ["bcg-matrix", "three-columns", "full-width"],
    "buy_vs_build": ["title-2-columns", "bcg-matrix", "full-width"],
    "product_roadmap": ["timeline", "process-flow", "full-width"],
    "competition_analysis": ["bcg-matrix", "title-2-columns"],
    "client_segments": ["three-columns", "bcg-matrix", "full-width"],
    "product_landscape": ["bcg-matrix", "three-columns"],
    "capability_assessment": ["title-2-columns", "bcg-matrix"],
    "gap_analysis": ["title-2-columns", "process-flow", "full-width"],
    "recommendations": ["process-flow", "three-columns", "full-width"],
    "partnerships": ["three-columns", "title-2-columns", "full-width"],
}

# Ordered substring rules applied after exact-id matching
_ALIAS_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("timeline", "roadmap"), "timeline"),
    (("process", "flow"), "process-flow"),
    (("matrix", "bcg", "2x2", "grid", "quadrant"), "bcg-matrix"),
    (("three", "3-col"), "three-columns"),
    (("two-column", "2-col", "title-2", "two-col"), "title-2-columns"),
    (("full", "single"), "full-width"),
]


class LayoutCatalog:
    """
    Registry of layout templates and framework compatibility.

    All lookups are pure; the catalog never changes after construction.
    """

    def __init__(
        self,
        layouts: Optional[List[LayoutDefinition]] = None,
        framework_layouts: Optional[Dict[str, List[str]]] = None
    ):
        self._layouts = {layout.id: layout for layout in (layouts or _LAYOUTS)}
        self._framework_layouts = framework_layouts or FRAMEWORK_LAYOUTS
        self._order = [DEFAULT_LAYOUT] + list(self._layouts.keys())

        unknown = {
            layout_id
            for layout_ids in self._framework_layouts.values()
            for layout_id in layout_ids
            if layout_id not in self._layouts
        }
        if unknown:
            logger.warning(f"[CATALOG] Framework matrix references unknown layouts: {sorted(unknown)}")

    def list_layouts(self) -> List[LayoutDefinition]:
        return list(self._layouts.values())

    def get_layout(self, layout_id: Optional[str]) -> Optional[LayoutDefinition]:
        if not layout_id:
            return None
        return self._layouts.get(layout_id)

    @property
    def frameworks(self) -> List[str]:
        return list(self._framework_layouts.keys())

    def supported_layouts(self, section: Section) -> List[str]:
        """
        Layout ids compatible with a section.

        Known framework -> its matrix row; unknown framework -> full-width only;
        no framework with structured content -> full-width / title-2-columns;
        otherwise the full catalog.
        """
        if section.framework:
            layouts = self._framework_layouts.get(section.framework)
            if layouts is None:
                return [FALLBACK_LAYOUT]
            return list(layouts)

        if section.has_structured_content:
            return [FALLBACK_LAYOUT, "title-2-columns"]

        return list(self._order)

    def recommended_layout(self, section: Section) -> str:
        for layout_id in self.supported_layouts(section):
            if layout_id != DEFAULT_LAYOUT:
                return layout_id
        return FALLBACK_LAYOUT

    def normalize_layout_id(self, free_text: Any) -> Optional[str]:
        """
        Canonicalize a free-text layout name.

        Returns None when nothing matches so callers must pick a fallback
        explicitly.
        """
        if not isinstance(free_text, str) or not free_text.strip():
            return None

        candidate = re.sub(r"[\s_]+", "-", free_text.strip().lower())
        if candidate in self._layouts or candidate == DEFAULT_LAYOUT:
            return candidate

        for needles, layout_id in _ALIAS_RULES:
            if any(needle in candidate for needle in needles):
                return layout_id

        return None

    def resolve_layout(self, section: Section, requested: Optional[str] = None) -> Tuple[str, bool]:
        """
        Pick the layout a section actually renders with.

        Returns (layout_id, fell_back). `fell_back` is True when a concrete
        request was unrecognized or incompatible and the recommended layout
        was substituted.
        """
        recommended = self.recommended_layout(section)
        requested = requested if requested is not None else section.layout

        if not requested:
            return recommended, False

        layout_id = self.normalize_layout_id(requested)
        if layout_id == DEFAULT_LAYOUT:
            return recommended, False

        if layout_id and layout_id in self.supported_layouts(section):
            return layout_id, False

        logger.info(
            f"[CATALOG] Layout '{requested}' not supported for section {section.id} "
            f"(framework={section.framework}); using '{recommended}'"
        )
        return recommended, True


# Global instance
_catalog: Optional[LayoutCatalog] = None


def get_layout_catalog() -> LayoutCatalog:
    """Get or create the global layout catalog"""
    global _catalog
    if _catalog is None:
        _catalog = LayoutCatalog()
    return _catalog


def list_layouts() -> List[LayoutDefinition]:
    return get_layout_catalog().list_layouts()


def get_layout(layout_id: Optional[str]) -> Optional[LayoutDefinition]:
    return get_layout_catalog().get_layout(layout_id)


def supported_layouts(section: Section) -> List[str]:
    return get_layout_catalog().supported_layouts(section)


def recommended_layout(section: Section) -> str:
    return get_layout_catalog().recommended_layout(section)


def normalize_layout_id(free_text: Any) -> Optional[str]:
    return get_layout_catalog().normalize_layout_id(free_text)


def resolve_layout(section: Section, requested: Optional[str] = None) -> Tuple[str, bool]:
    return get_layout_catalog().resolve_layout(section, requested)
