from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field

from models.section import Chart


class StructuralType(str, Enum):
    """How a layout arranges its slots"""
    SINGLE_COLUMN = "single-column"
    MULTI_COLUMN = "multi-column"
    GRID = "grid"
    TIMELINE = "timeline"
    FLOW = "flow"


class LayoutDefinition(BaseModel):
    """Layout template registered in the catalog"""
    id: str
    name: str
    description: str = ""
    structuralType: StructuralType
    slotCount: int
    slotMetadata: List[Dict[str, Any]] = Field(default_factory=list)


class RenderItem(BaseModel):
    """One piece of content placed in a slot"""
    title: str = ""
    body: str = ""
    bullets: List[str] = Field(default_factory=list)
    kind: str = "text"  # slide | framework | key_point | block | html | markdown | fragment | insight | citation | placeholder
    placeholder: bool = False


class RenderSlot(BaseModel):
    index: int
    role: str
    label: str = ""
    items: List[RenderItem] = Field(default_factory=list)
    charts: List[Chart] = Field(default_factory=list)

    @property
    def is_populated(self) -> bool:
        return bool(self.items) or bool(self.charts)


class RenderHeader(BaseModel):
    title: str
    subtitle: str = ""
    description: str = ""


class RenderTree(BaseModel):
    """Section content distributed into a layout's slots"""
    sectionId: str
    layoutId: str
    requestedLayout: Optional[str] = None
    fellBack: bool = False
    structuralType: StructuralType
    header: RenderHeader
    slots: List[RenderSlot] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
