"""
AI Design Suggestion Broker

Requests a layout recommendation (and optionally richer section content) from
the design agent, caches it on the section as `layoutPreview`, and promotes it
into the live section only on an explicit apply.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from agents.core.interfaces import IDesignSuggestionService
from agents.generation.exceptions import ServiceError
from agents.generation.heuristic_extraction import first_text, parse_json, text_list
from agents.generation.layout_catalog import (
    DEFAULT_LAYOUT,
    FALLBACK_LAYOUT,
    LayoutCatalog,
    get_layout_catalog,
)
from agents.generation.section_store import SectionStore
from models.section import LayoutPreview, Section
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

DESIGN_FRAMEWORK = "market_sizing"


def is_market_sizing(section: Section) -> bool:
    return section.framework == DESIGN_FRAMEWORK


class SuggestionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class DesignSuggestionState:
    status: SuggestionStatus = SuggestionStatus.IDLE
    message: str = ""
    recommended_layout: Optional[str] = None
    select_layout: bool = False
    from_cache: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'message': self.message,
            'recommendedLayout': self.recommended_layout,
            'selectLayout': self.select_layout,
            'fromCache': self.from_cache
        }


def parse_design_response(response: Any) -> Dict[str, Any]:
    """Raw object, JSON string, or nested under `response` / `data`"""
    payload = parse_json(response) if isinstance(response, str) else response
    if not isinstance(payload, dict):
        return {}

    for key in ("response", "data"):
        nested = payload.get(key)
        if isinstance(nested, str):
            nested = parse_json(nested)
        if isinstance(nested, dict) and any(
            k in nested for k in ("layoutRecommendation", "recommendedLayout", "section", "layout")
        ):
            return nested
    return payload


def extract_layout_recommendation(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Pull {layout, name, reason} from the shapes design agents answer with"""
    recommendation = payload.get("layoutRecommendation") or payload.get("recommendation")
    section = payload.get("section") if isinstance(payload.get("section"), dict) else {}

    if isinstance(recommendation, str):
        recommendation = {"id": recommendation}
    if not isinstance(recommendation, dict):
        recommendation = {}

    candidates = [
        recommendation.get("id"),
        recommendation.get("layout"),
        recommendation.get("layoutId"),
        recommendation.get("name"),
        payload.get("recommendedLayout"),
        payload.get("layout"),
        section.get("layout"),
    ]
    return {
        "candidates": [c for c in candidates if isinstance(c, str) and c.strip()],
        "name": first_text(recommendation.get("name"), payload.get("layoutName")),
        "reason": first_text(recommendation.get("reason"), recommendation.get("rationale"), payload.get("reason")),
    }


class DesignSuggestionBroker:
    """
    Cache-first design suggestions per section.

    Per-section states: idle -> loading -> success | error. Concurrent
    requests for the same section share a single agent call; brokers built
    per request share it through the `tasks` registry, and each merges the
    answer into its own store.
    """

    def __init__(
        self,
        store: SectionStore,
        service: IDesignSuggestionService,
        catalog: Optional[LayoutCatalog] = None,
        is_eligible: Callable[[Section], bool] = is_market_sizing,
        tasks: Optional[Dict[str, asyncio.Future]] = None
    ):
        self.store = store
        self.service = service
        self.catalog = catalog or get_layout_catalog()
        self.is_eligible = is_eligible
        self._states: Dict[str, DesignSuggestionState] = {}
        self._tasks: Dict[str, asyncio.Future] = tasks if tasks is not None else {}

    def get_state(self, section_id: str) -> DesignSuggestionState:
        return self._states.get(section_id, DesignSuggestionState())

    def _set_state(self, section_id: str, state: DesignSuggestionState) -> DesignSuggestionState:
        self._states[section_id] = state
        return state

    def _task_key(self, section_id: str) -> str:
        return f"{self.store.storyline.id or id(self.store)}:{self.service.agent_id}:{section_id}"

    async def request_suggestion(
        self,
        section_id: str,
        project: Optional[Dict[str, Any]] = None,
        force: bool = False
    ) -> DesignSuggestionState:
        section = self.store.get_section(section_id)

        if not self.is_eligible(section):
            logger.info(f"[DESIGN] Section {section_id} not eligible (framework={section.framework})")
            return self._set_state(section_id, DesignSuggestionState(
                status=SuggestionStatus.ERROR,
                message="Design suggestions are only available for market sizing sections"
            ))

        preview = section.layoutPreview
        if preview is not None and preview.agentId == self.service.agent_id and not force:
            logger.debug(f"[DESIGN] Cache hit for section {section_id} ({preview.layout})")
            return self._set_state(section_id, DesignSuggestionState(
                status=SuggestionStatus.SUCCESS,
                message="Using cached design suggestion",
                recommended_layout=preview.layout,
                from_cache=True
            ))

        storyline = self.store.storyline
        self._set_state(section_id, DesignSuggestionState(status=SuggestionStatus.LOADING))

        key = self._task_key(section_id)
        task = self._tasks.get(key)
        if task is None:
            logger.info(f"[DESIGN] Requesting suggestion for section {section_id}")
            task = asyncio.ensure_future(self.service.suggest(
                section.model_dump(mode='json'),
                storyline.summary(),
                project
            ))
            self._tasks[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        else:
            logger.info(f"[DESIGN] Joining in-flight suggestion for section {section_id}")

        try:
            response = await asyncio.shield(task)
        except ServiceError as e:
            self._set_state(section_id, DesignSuggestionState(status=SuggestionStatus.ERROR, message=e.user_message))
            logger.error(f"[DESIGN] Suggestion for section {section_id} failed: {e.user_message}")
            raise

        return self._complete(section_id, storyline.id, response)

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled():
            # Every waiter re-raises; mark the failure retrieved
            task.exception()

    def _complete(self, section_id: str, storyline_id: Optional[str], response: Any) -> DesignSuggestionState:
        if self.store.storyline.id != storyline_id or not self.store.has_section(section_id):
            logger.warning(f"[DESIGN] Discarding stale suggestion for section {section_id}")
            return self._set_state(section_id, DesignSuggestionState(
                status=SuggestionStatus.ERROR,
                message="Section changed before the suggestion arrived"
            ))

        preview = self._build_preview(response, self.store.get_section(section_id).layoutPreview)
        self.store.set_layout_preview(section_id, preview)

        logger.info(f"[DESIGN] Section {section_id}: recommended '{preview.layout}'")
        return self._set_state(section_id, DesignSuggestionState(
            status=SuggestionStatus.SUCCESS,
            message=preview.reason or f"Recommended layout: {preview.layoutName or preview.layout}",
            recommended_layout=preview.layout,
            select_layout=True
        ))

    def _build_preview(self, response: Any, existing: Optional[LayoutPreview]) -> LayoutPreview:
        payload = parse_design_response(response)
        recommendation = extract_layout_recommendation(payload)

        layout_id = None
        for candidate in recommendation["candidates"]:
            layout_id = self.catalog.normalize_layout_id(candidate)
            if layout_id and layout_id != DEFAULT_LAYOUT:
                break
            layout_id = None
        if layout_id is None:
            logger.info(f"[DESIGN] Unrecognized recommendation {recommendation['candidates']}; using {FALLBACK_LAYOUT}")
            layout_id = FALLBACK_LAYOUT

        definition = self.catalog.get_layout(layout_id)
        data = payload.get("section") if isinstance(payload.get("section"), dict) else {}

        fresh = {
            "appliedAt": datetime.now(timezone.utc),
            "layout": layout_id,
            "agentId": self.service.agent_id,
            "reason": recommendation["reason"],
            "layoutName": recommendation["name"] or (definition.name if definition else ""),
            "designGuidelines": text_list(payload.get("designGuidelines")),
            "data": data,
            "raw": payload or response,
        }

        if existing is None:
            return LayoutPreview(**fresh)

        # Keep what the cache already had unless the new suggestion brings something
        merged = existing.model_dump()
        for key, value in fresh.items():
            if key == "data":
                merged["data"] = {**existing.data, **{k: v for k, v in value.items() if v not in (None, "", [], {})}}
            elif value not in (None, "", [], {}):
                merged[key] = value
        return LayoutPreview(**merged)

    def apply_suggestion(self, section_id: str, selected_layout: Optional[str] = None) -> Section:
        """Promote the cached preview; raises SuggestionNotApplicableError on a layout mismatch"""
        self.store.apply_suggestion(section_id, selected_layout)
        return self.store.get_section(section_id)
