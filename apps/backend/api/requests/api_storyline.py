"""
API endpoints for the storyline section engine: layout options, rendering,
regeneration, slide generation and design suggestions.

Requests carry the storyline; each call works on its own SectionStore.
"""
import asyncio
from typing import Dict, NoReturn, Set

import sentry_sdk
from fastapi import APIRouter, Depends, HTTPException

from agents.core.interfaces import IDesignSuggestionService, IRegenerationService, ISlideGenerationService
from agents.generation.content_distributor import get_content_distributor
from agents.generation.content_normalizer import normalize_section
from agents.generation.design_suggestion_broker import DesignSuggestionBroker
from agents.generation.exceptions import (
    RequestInProgressError,
    SectionNotFoundError,
    ServiceError,
    StorylineError,
    ValidationError,
)
from agents.generation.layout_catalog import get_layout_catalog
from agents.generation.regeneration_orchestrator import RegenerationOrchestrator
from agents.generation.section_store import SectionStore
from agents.generation.slide_coordinator import SlideGeneratorCoordinator, needs_slides
from models.requests import (
    ApplySuggestionRequest,
    ApplySuggestionResponse,
    DesignSuggestionRequest,
    DesignSuggestionResponse,
    LayoutOptionsRequest,
    LayoutOptionsResponse,
    RegenerateRequest,
    RegenerateResponse,
    RenderRequest,
    RenderResponse,
    SlidesRequest,
    SlidesResponse,
)
from services.agent_service import DesignAgentService, RegenerationAgentService, SlideAgentService
from setup_logging_optimized import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api/storyline", tags=["Storyline"])

# Requests build their own engines; the in-flight guards are process-wide
_active_regenerations: Set[str] = set()
_active_slide_runs: Set[str] = set()
_pending_suggestions: Dict[str, asyncio.Future] = {}


# ============= Dependencies =============

def get_regeneration_service() -> IRegenerationService:
    return RegenerationAgentService()


def get_slide_service() -> ISlideGenerationService:
    return SlideAgentService()


def get_design_service() -> IDesignSuggestionService:
    return DesignAgentService()


def _raise_http(error: StorylineError) -> NoReturn:
    """Map engine errors onto HTTP status codes"""
    if isinstance(error, SectionNotFoundError):
        raise HTTPException(status_code=404, detail=error.message)
    if isinstance(error, RequestInProgressError):
        raise HTTPException(status_code=409, detail=error.message)
    if isinstance(error, ValidationError):
        raise HTTPException(status_code=400, detail=error.message)
    sentry_sdk.capture_exception(error)
    if isinstance(error, ServiceError):
        raise HTTPException(status_code=502, detail=error.user_message)
    raise HTTPException(status_code=500, detail=error.message)


# ============= Layouts =============

@router.post("/layouts")
async def layout_options(request: LayoutOptionsRequest) -> LayoutOptionsResponse:
    """Supported and recommended layouts for a section"""
    catalog = get_layout_catalog()
    section = normalize_section(request.section)
    supported = catalog.supported_layouts(section)
    return LayoutOptionsResponse(
        sectionId=section.id,
        supported=supported,
        recommended=catalog.recommended_layout(section),
        layouts=[layout for layout in catalog.list_layouts() if layout.id in supported]
    )


@router.post("/render")
async def render_section(request: RenderRequest) -> RenderResponse:
    """Distribute a section's content into a layout"""
    tree = get_content_distributor().render(normalize_section(request.section), request.layout)
    return RenderResponse(tree=tree)


# ============= Agent-backed operations =============

@router.post("/regenerate")
async def regenerate_storyline(
    request: RegenerateRequest,
    service: IRegenerationService = Depends(get_regeneration_service)
) -> RegenerateResponse:
    """Regenerate draft sections; locked sections come back untouched"""
    store = SectionStore(request.storyline)
    sentry_sdk.set_tag("storyline_id", store.storyline.id or "unsaved")
    orchestrator = RegenerationOrchestrator(store, service, in_flight=_active_regenerations)
    try:
        result = await orchestrator.regenerate(request.deliverable, request.instructions)
    except StorylineError as e:
        logger.error(f"[REGEN] Request for storyline {store.storyline.id} failed: {e}")
        _raise_http(e)

    return RegenerateResponse(
        success=not result.discarded,
        storyline=store.storyline.model_dump(mode='json'),
        result=result.to_dict()
    )


@router.post("/slides")
async def generate_slides(
    request: SlidesRequest,
    service: ISlideGenerationService = Depends(get_slide_service)
) -> SlidesResponse:
    """Generate slides for the selected sections, one section at a time"""
    store = SectionStore(request.storyline)
    selected = set(request.sectionIds or [])

    def predicate(section):
        if selected and section.id not in selected:
            return False
        return request.overwriteExisting or needs_slides(section)

    coordinator = SlideGeneratorCoordinator(store, service, in_flight=_active_slide_runs)
    try:
        result = await coordinator.generate_for_sections(predicate)
    except StorylineError as e:
        _raise_http(e)

    return SlidesResponse(
        success=not result.is_total_failure,
        storyline=store.storyline.model_dump(mode='json'),
        completed=result.completed,
        total=result.total,
        failures=[f.to_dict() for f in result.failures],
        partialFailure=result.is_partial_failure
    )


@router.post("/design-suggestion")
async def design_suggestion(
    request: DesignSuggestionRequest,
    service: IDesignSuggestionService = Depends(get_design_service)
) -> DesignSuggestionResponse:
    """Recommend a layout for an eligible section and cache it as layoutPreview"""
    store = SectionStore(request.storyline)
    broker = DesignSuggestionBroker(store, service, tasks=_pending_suggestions)
    try:
        state = await broker.request_suggestion(request.sectionId, request.project, request.force)
    except StorylineError as e:
        _raise_http(e)

    return DesignSuggestionResponse(
        success=state.status.value == "success",
        section=store.get_section(request.sectionId).model_dump(mode='json'),
        state=state.to_dict()
    )


@router.post("/design-suggestion/apply")
async def apply_design_suggestion(request: ApplySuggestionRequest) -> ApplySuggestionResponse:
    """Promote a cached suggestion; only allowed while its layout is selected"""
    store = SectionStore(request.storyline)
    try:
        store.apply_suggestion(request.sectionId, request.selectedLayout)
    except StorylineError as e:
        _raise_http(e)

    return ApplySuggestionResponse(
        success=True,
        section=store.get_section(request.sectionId).model_dump(mode='json'),
        storyline=store.storyline.model_dump(mode='json')
    )
