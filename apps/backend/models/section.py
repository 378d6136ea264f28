from datetime import datetime
from typing import Dict, Any, List, Optional, Literal

from pydantic import BaseModel, Field

SectionStatus = Literal["draft", "final", "loading"]


class Chart(BaseModel):
    """Chart record; `config` is handed to the chart renderer untouched"""
    id: str
    title: str = ""
    caption: str = ""
    source: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    type: str = "bar"


class ContentBlock(BaseModel):
    """Typed group of content items (e.g. 'Key Insights', 'Process Flow')"""
    type: str = "Content Block"
    title: str = ""
    items: List[str] = Field(default_factory=list)


class Slide(BaseModel):
    """Slide produced by the slide agent or derived from section text"""
    title: str
    subtitle: str = ""
    summary: str = ""
    bullets: List[str] = Field(default_factory=list)
    notes: str = ""
    layout: str = "title-2-columns"


class LayoutPreview(BaseModel):
    """
    Cached design-agent suggestion for a section.

    Only promoted into the live section by an explicit apply, and only
    while the section's selected layout equals `layout`.
    """
    appliedAt: Optional[datetime] = None
    layout: str = "full-width"
    agentId: Optional[str] = None
    reason: str = ""
    layoutName: str = ""
    designGuidelines: List[str] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)
    raw: Any = None


class Section(BaseModel):
    """
    Canonical storyline section.

    Field names follow the storyline JSON contract shared with the frontend.
    Unknown keys from agent output are kept as extras.
    """
    model_config = {
        "extra": "allow",
    }

    id: str
    title: str
    description: str = ""
    markdown: str = ""
    html: str = ""
    charts: List[Chart] = Field(default_factory=list)
    keyPoints: List[str] = Field(default_factory=list)
    contentBlocks: List[ContentBlock] = Field(default_factory=list)
    slides: List[Slide] = Field(default_factory=list)
    layout: Optional[str] = None
    layoutPreview: Optional[LayoutPreview] = None
    locked: bool = False
    status: SectionStatus = "draft"
    framework: Optional[str] = None
    order: int = 0
    # Supplementary content carried alongside the primary fields
    insights: List[str] = Field(default_factory=list)
    citations: List[Any] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    takeaway: str = ""
    frameworkData: Optional[Dict[str, Any]] = None
    estimatedSlides: Optional[int] = None
    # Lifecycle stamps
    lockedAt: Optional[datetime] = None
    lockedBy: Optional[str] = None
    layoutAppliedAt: Optional[datetime] = None
    slidesGeneratedAt: Optional[datetime] = None
    slidesGenerationContext: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None

    @property
    def is_locked(self) -> bool:
        """Locked sections and finalized sections are both protected from regeneration"""
        return self.locked or self.status == "final"

    @property
    def has_structured_content(self) -> bool:
        return bool(self.keyPoints) or any(block.items for block in self.contentBlocks)
