"""
Slide Generator Coordinator

Requests slide decks for a cohort of sections one at a time, reports monotonic
progress and isolates per-section failures. Successful sections are merged
into the store in a single pass once the cohort is done.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from agents.core.interfaces import ISlideGenerationService
from agents.generation.content_normalizer import extract_slides, normalize_slides
from agents.generation.exceptions import RequestInProgressError, ServiceError, SlideGenerationError
from agents.generation.layout_catalog import LayoutCatalog, get_layout_catalog
from agents.generation.section_store import SectionStore
from models.section import Section, Slide
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

SectionPredicate = Callable[[Section], bool]


def needs_slides(section: Section) -> bool:
    """Default cohort: sections without slides yet"""
    return not section.slides


@dataclass
class SlideProgress:
    completed: int
    total: int
    section_id: Optional[str] = None

    @property
    def percent(self) -> int:
        return int(self.completed / self.total * 100) if self.total else 100


@dataclass
class SlideFailure:
    section_id: str
    title: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {'sectionId': self.section_id, 'title': self.title, 'error': self.error}


@dataclass
class SlideGenerationResult:
    """`completed` counts processed sections, failed ones included"""
    completed: int = 0
    total: int = 0
    succeeded: List[str] = field(default_factory=list)
    failures: List[SlideFailure] = field(default_factory=list)

    @property
    def is_partial_failure(self) -> bool:
        return bool(self.failures) and bool(self.succeeded)

    @property
    def is_total_failure(self) -> bool:
        return self.total > 0 and not self.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            'completed': self.completed,
            'total': self.total,
            'succeeded': list(self.succeeded),
            'failures': [f.to_dict() for f in self.failures],
            'partialFailure': self.is_partial_failure,
            'totalFailure': self.is_total_failure
        }


class SlideGeneratorCoordinator:
    """
    Sequential slide generation over the store's sections.

    Sections are processed one at a time: progress stays monotonic and the
    slide agent sees one request at a time. One run per storyline; share the
    `in_flight` set between coordinators built per request.
    """

    def __init__(
        self,
        store: SectionStore,
        service: ISlideGenerationService,
        catalog: Optional[LayoutCatalog] = None,
        agent_source: str = "slide-agent",
        in_flight: Optional[Set[str]] = None
    ):
        self.store = store
        self.service = service
        self.catalog = catalog or get_layout_catalog()
        self.agent_source = agent_source
        self._in_flight: Set[str] = in_flight if in_flight is not None else set()

    async def generate_for_sections(
        self,
        predicate: Optional[SectionPredicate] = None,
        on_progress: Optional[Callable[[SlideProgress], Any]] = None
    ) -> SlideGenerationResult:
        key = self.store.storyline.id or f"unsaved-{id(self.store)}"
        if key in self._in_flight:
            raise RequestInProgressError(
                "Slide generation already in progress",
                context={'storyline_id': self.store.storyline.id}
            )

        self._in_flight.add(key)
        try:
            return await self._run(predicate or needs_slides, on_progress)
        finally:
            self._in_flight.discard(key)

    async def _run(
        self,
        predicate: SectionPredicate,
        on_progress: Optional[Callable[[SlideProgress], Any]]
    ) -> SlideGenerationResult:
        storyline = self.store.storyline
        targets = [s for s in storyline.sections if predicate(s)]
        result = SlideGenerationResult(total=len(targets))
        generated: Dict[str, Dict[str, Any]] = {}

        logger.info(f"[SLIDES] Generating slides for {len(targets)} of {len(storyline.sections)} sections")
        await self._report(on_progress, SlideProgress(0, result.total))

        summary = storyline.summary()
        for section in targets:
            layout, _ = self.catalog.resolve_layout(section)
            try:
                slides = await self._generate_section(section, summary, layout)
                generated[section.id] = {'slides': slides, 'layout': layout}
                result.succeeded.append(section.id)
                logger.info(f"[SLIDES] Section {section.id}: {len(slides)} slides")
            except Exception as e:
                message = e.user_message if isinstance(e, ServiceError) else str(getattr(e, 'message', e))
                logger.error(f"[SLIDES] Section {section.id} ('{section.title}') failed: {message}")
                result.failures.append(SlideFailure(section.id, section.title, message))

            result.completed += 1
            await self._report(on_progress, SlideProgress(result.completed, result.total, section.id))

        if generated:
            self._commit(generated)
        else:
            logger.warning("[SLIDES] No section produced slides; storyline unchanged")

        return result

    async def _generate_section(self, section: Section, summary: Dict[str, Any], layout: str) -> List[Slide]:
        response = await self.service.generate_slides(section.model_dump(mode='json'), summary, layout)

        if isinstance(response, dict) and response.get('success') is False:
            raise SlideGenerationError(
                section.id, section.title,
                str(response.get('details') or response.get('error') or "Slide agent reported failure")
            )

        slides = normalize_slides(extract_slides(response), layout)
        if not slides:
            raise SlideGenerationError(section.id, section.title, "Slide agent returned no slides")
        return slides

    def _commit(self, generated: Dict[str, Dict[str, Any]]) -> None:
        """Merge all successes in one store mutation, against the latest snapshot"""
        stamp = datetime.now(timezone.utc)
        updates = []
        for section_id, output in generated.items():
            if not self.store.has_section(section_id):
                logger.warning(f"[SLIDES] Section {section_id} removed during generation; dropping its slides")
                continue
            current = self.store.get_section(section_id)
            updates.append(current.model_copy(update={
                'slides': output['slides'],
                'slidesGeneratedAt': stamp,
                'slidesGenerationContext': {'layout': output['layout'], 'agentSource': self.agent_source}
            }))

        if updates:
            # Locked sections receive slides too
            self.store.merge_sections(updates, overwrite_locked=True)

    @staticmethod
    async def _report(callback: Optional[Callable[[SlideProgress], Any]], progress: SlideProgress) -> None:
        if callback is None:
            return
        outcome = callback(progress)
        if asyncio.iscoroutine(outcome):
            await outcome
