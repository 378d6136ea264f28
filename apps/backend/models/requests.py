from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from models.layout import LayoutDefinition, RenderTree


class LayoutOptionsRequest(BaseModel):
    """Layouts a section may use"""
    section: Dict[str, Any] = Field(..., description="Raw or canonical section payload")


class LayoutOptionsResponse(BaseModel):
    sectionId: str
    supported: List[str]
    recommended: str
    layouts: List[LayoutDefinition]


class RenderRequest(BaseModel):
    section: Dict[str, Any]
    layout: Optional[str] = None  # Falls back to the section's own layout, then the recommended one


class RenderResponse(BaseModel):
    tree: RenderTree


class RegenerateRequest(BaseModel):
    storyline: Dict[str, Any] = Field(..., description="Storyline with a persisted id")
    deliverable: Optional[Dict[str, Any]] = None
    instructions: Optional[str] = None


class RegenerateResponse(BaseModel):
    success: bool
    storyline: Dict[str, Any]
    result: Dict[str, Any]


class SlidesRequest(BaseModel):
    storyline: Dict[str, Any]
    sectionIds: Optional[List[str]] = None  # Defaults to every section without slides
    overwriteExisting: bool = False  # Regenerate selected sections even when they already have slides


class SlidesResponse(BaseModel):
    success: bool
    storyline: Dict[str, Any]
    completed: int
    total: int
    failures: List[Dict[str, Any]] = Field(default_factory=list)
    partialFailure: bool = False


class DesignSuggestionRequest(BaseModel):
    storyline: Dict[str, Any]
    sectionId: str
    project: Optional[Dict[str, Any]] = None
    force: bool = False  # Ignore a cached suggestion from the same agent


class DesignSuggestionResponse(BaseModel):
    success: bool
    section: Dict[str, Any]
    state: Dict[str, Any]


class ApplySuggestionRequest(BaseModel):
    storyline: Dict[str, Any]
    sectionId: str
    selectedLayout: Optional[str] = None


class ApplySuggestionResponse(BaseModel):
    success: bool
    section: Dict[str, Any]
    storyline: Dict[str, Any]
