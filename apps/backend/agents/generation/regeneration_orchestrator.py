"""
Regeneration Orchestrator

Regenerates the draft sections of a saved storyline while leaving locked
sections untouched.

States: idle -> preparing -> requesting -> merging -> done | failed

- preparing: partition locked/draft, validate, snapshot a backup
- requesting: call the regeneration agent, retrying only on rate limits
- merging: replace drafts by id, fill remaining drafts by position, append leftovers

Any failure before merging leaves the store exactly as it was.
"""

import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from agents.core.interfaces import IRegenerationService
from agents.generation.config import RegenerationConfig, get_regeneration_config
from agents.generation.content_normalizer import normalize_section
from agents.generation.exceptions import (
    InvalidResponseError,
    NothingToRegenerateError,
    RateLimitError,
    RateLimitExhaustedError,
    RequestInProgressError,
    UnsavedStorylineError,
    get_retry_delay,
)
from agents.generation.heuristic_extraction import parse_json
from agents.generation.section_store import SectionStore, reindex
from models.section import Section
from models.storyline import Storyline, increment_version
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

STORYLINE_LEVEL_FIELDS = ("executiveSummary", "presentationFlow", "callToAction")


class RegenerationState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    REQUESTING = "requesting"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RegenerationResult:
    """Outcome of one regeneration run"""
    state: RegenerationState
    storyline: Optional[Storyline]
    backup: Storyline
    regenerated_count: int = 0
    preserved_count: int = 0
    appended_count: int = 0
    attempts: int = 0
    discarded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'regeneratedCount': self.regenerated_count,
            'preservedCount': self.preserved_count,
            'appendedCount': self.appended_count,
            'attempts': self.attempts,
            'discarded': self.discarded
        }


@dataclass
class MergeOutcome:
    sections: List[Section]
    regenerated: int = 0
    appended: int = 0
    ignored_locked: List[str] = field(default_factory=list)


def partition_sections(sections: List[Section]) -> Tuple[List[Section], List[Section]]:
    """Split into (locked, draft); finalized sections count as locked"""
    locked = [s for s in sections if s.is_locked]
    drafts = [s for s in sections if not s.is_locked]
    return locked, drafts


def estimate_document_length(storyline: Storyline) -> float:
    """Pages: 1.5 per section plus one per three key points, at least 5"""
    if not storyline.sections:
        return 10
    key_points = sum(len(s.keyPoints) for s in storyline.sections)
    return max(len(storyline.sections) * 1.5 + math.ceil(key_points / 3), 5)


def build_regeneration_payload(
    storyline: Storyline,
    locked: List[Section],
    drafts: List[Section],
    deliverable: Optional[Dict[str, Any]] = None,
    instructions: Optional[str] = None
) -> Dict[str, Any]:
    """Request body for the regeneration agent"""
    extras = storyline.model_extra or {}
    return {
        'storylineId': storyline.id,
        'deliverable': deliverable or {
            'id': storyline.deliverableId,
            'name': storyline.title or 'Untitled Storyline',
            'type': extras.get('topic') or 'Strategic Analysis',
            'audience': extras.get('audience') or [],
            'brief': extras.get('objectives') or 'Strategic storyline regeneration',
            'format': extras.get('presentationStyle') or 'consulting',
            'documentLength': estimate_document_length(storyline)
        },
        'instructions': instructions or '',
        'existingLockedSections': [
            {
                'id': s.id,
                'title': s.title,
                'order': s.order,
                'keyPoints': s.keyPoints[:2],
                'status': s.status
            }
            for s in locked
        ],
        'draftSections': [s.model_dump(mode='json', exclude={'layoutPreview'}) for s in drafts],
        'regenerationContext': {
            'totalSections': len(storyline.sections),
            'lockedCount': len(locked),
            'draftCount': len(drafts)
        }
    }


def extract_response_sections(response: Any) -> Tuple[List[Any], Dict[str, Any]]:
    """
    Pull (raw_sections, storyline_fields) out of a regeneration response.

    Accepts the sections at the top level, under `storyline`, or under `data`;
    JSON-encoded strings are parsed.
    """
    if isinstance(response, str):
        response = parse_json(response)

    if isinstance(response, list):
        return response, {}
    if not isinstance(response, dict):
        raise InvalidResponseError("Regeneration response is not an object")

    for container in (response.get('data'), response.get('storyline'), response):
        if isinstance(container, str):
            container = parse_json(container)
        if isinstance(container, dict) and isinstance(container.get('sections'), list):
            fields = {k: container[k] for k in STORYLINE_LEVEL_FIELDS if container.get(k) is not None}
            return container['sections'], fields

    raise InvalidResponseError("Regeneration response contained no sections")


def merge_regenerated_sections(current: List[Section], raw_sections: List[Any]) -> MergeOutcome:
    """
    Merge regenerated sections into the current list.

    Responses matching a draft id replace it in place. Responses echoing a
    locked id are ignored. Unmatched responses fill the remaining draft
    positions in order (taking over the draft's id); whatever is left is
    appended as new drafts.
    """
    by_id = {s.id: s for s in current}
    replacements: Dict[str, Section] = {}
    unmatched: List[Any] = []
    ignored_locked: List[str] = []

    for raw in raw_sections:
        raw_id = raw.get('id') if isinstance(raw, dict) else None
        target = by_id.get(raw_id) if raw_id else None
        if target is None:
            unmatched.append(raw)
        elif target.is_locked:
            ignored_locked.append(target.id)
        elif target.id not in replacements:
            replacements[target.id] = _as_draft(raw, target)
        else:
            unmatched.append(raw)

    open_drafts = [s for s in current if not s.is_locked and s.id not in replacements]
    for target, raw in zip(open_drafts, unmatched):
        raw = dict(raw) if isinstance(raw, dict) else {'description': raw}
        raw['id'] = target.id
        replacements[target.id] = _as_draft(raw, target)

    merged = [replacements.get(s.id, s) for s in current]

    leftovers = unmatched[len(open_drafts):]
    taken = {s.id for s in merged}
    for offset, raw in enumerate(leftovers):
        section = normalize_section(raw, len(merged))
        if section.id in taken:
            section = section.model_copy(update={'id': f"section_{len(merged)}_{offset}"})
        section = section.model_copy(update={'locked': False, 'status': 'draft', 'lockedAt': None, 'lockedBy': None})
        taken.add(section.id)
        merged.append(section)

    return MergeOutcome(
        sections=reindex(merged),
        regenerated=len(replacements),
        appended=len(leftovers),
        ignored_locked=ignored_locked
    )


def _as_draft(raw: Any, previous: Section) -> Section:
    section = normalize_section(raw, previous.order)
    update = {
        'id': previous.id,
        'order': previous.order,
        'locked': False,
        'status': 'draft',
        'lockedAt': None,
        'lockedBy': None,
        'updated_at': datetime.now(timezone.utc),
    }
    # The user's layout choice survives content regeneration
    if section.layout is None:
        update['layout'] = previous.layout
    if section.framework is None:
        update['framework'] = previous.framework
    return section.model_copy(update=update)


class RegenerationOrchestrator:
    """
    Runs storyline regeneration against the section store.

    One regeneration per storyline at a time; a second request while one is
    in flight raises RequestInProgressError. Orchestrators built per request
    share the guard through the `in_flight` set.
    """

    def __init__(
        self,
        store: SectionStore,
        service: IRegenerationService,
        config: Optional[RegenerationConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        in_flight: Optional[Set[str]] = None
    ):
        self.store = store
        self.service = service
        self.config = config or get_regeneration_config()
        self._sleep = sleep
        self._in_flight: Set[str] = in_flight if in_flight is not None else set()
        self.state = RegenerationState.IDLE

    def _transition(self, state: RegenerationState):
        logger.debug(f"[REGEN] {self.state.value} -> {state.value}")
        self.state = state

    async def regenerate(
        self,
        deliverable: Optional[Dict[str, Any]] = None,
        instructions: Optional[str] = None
    ) -> RegenerationResult:
        storyline = self.store.storyline
        key = storyline.id or '__unsaved__'
        if key in self._in_flight:
            raise RequestInProgressError(
                "Regeneration already in progress for this storyline",
                context={'storyline_id': storyline.id}
            )

        self._in_flight.add(key)
        try:
            return await self._run(storyline, deliverable, instructions)
        finally:
            self._in_flight.discard(key)

    async def _run(
        self,
        storyline: Storyline,
        deliverable: Optional[Dict[str, Any]],
        instructions: Optional[str]
    ) -> RegenerationResult:
        self._transition(RegenerationState.PREPARING)

        locked, drafts = partition_sections(storyline.sections)
        if not drafts:
            self._transition(RegenerationState.FAILED)
            raise NothingToRegenerateError(context={'locked_count': len(locked)})

        if not storyline.is_saved:
            self._transition(RegenerationState.FAILED)
            raise UnsavedStorylineError()

        backup = storyline.model_copy(deep=True)
        payload = build_regeneration_payload(storyline, locked, drafts, deliverable, instructions)

        logger.info(
            f"[REGEN] Regenerating storyline {storyline.id}: "
            f"{len(drafts)} draft, {len(locked)} locked"
        )

        self._transition(RegenerationState.REQUESTING)
        try:
            response, attempts = await self._request_with_backoff(payload)
            raw_sections, storyline_fields = extract_response_sections(response)
        except Exception:
            self._transition(RegenerationState.FAILED)
            raise

        current = self.store.storyline
        if current.id != storyline.id:
            logger.warning(
                f"[REGEN] Discarding stale response for storyline {storyline.id} "
                f"(store now holds {current.id})"
            )
            self._transition(RegenerationState.FAILED)
            return RegenerationResult(
                state=self.state, storyline=None, backup=backup, attempts=attempts, discarded=True
            )

        self._transition(RegenerationState.MERGING)
        try:
            outcome = merge_regenerated_sections(current.sections, raw_sections)
        except Exception:
            self._transition(RegenerationState.FAILED)
            raise
        if outcome.ignored_locked:
            logger.info(f"[REGEN] Ignored regenerated content for locked sections: {outcome.ignored_locked}")

        preserved = sum(1 for s in outcome.sections if s.is_locked)
        merged = current.model_copy(update={
            **storyline_fields,
            'sections': outcome.sections,
            'version': increment_version(current.version),
            'lastRegeneration': {
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'regeneratedSections': outcome.regenerated,
                'preservedSections': preserved,
                'appendedSections': outcome.appended,
                'previousVersion': current.version
            }
        })
        self.store.replace_storyline(merged, dirty=True)

        self._transition(RegenerationState.DONE)
        logger.info(
            f"[REGEN] Storyline {storyline.id} regenerated: {outcome.regenerated} replaced, "
            f"{outcome.appended} appended, {preserved} preserved (v{merged.version})"
        )

        return RegenerationResult(
            state=self.state,
            storyline=self.store.storyline,
            backup=backup,
            regenerated_count=outcome.regenerated,
            preserved_count=preserved,
            appended_count=outcome.appended,
            attempts=attempts
        )

    async def _request_with_backoff(self, payload: Dict[str, Any]) -> Tuple[Any, int]:
        """Call the service; only rate-limit errors are retried"""
        attempt = 0
        while True:
            try:
                return await self.service.regenerate(payload), attempt + 1
            except RateLimitError as e:
                if attempt >= self.config.max_retries:
                    raise RateLimitExhaustedError(
                        e.user_message or "Rate limit exceeded, please try again later",
                        cause=e,
                        context={'attempts': attempt + 1}
                    )
                delay = get_retry_delay(
                    e, attempt,
                    base_delay=self.config.base_delay,
                    max_delay=self.config.max_delay,
                    jitter=self.config.jitter
                )
                logger.warning(f"[REGEN] Rate limited (attempt {attempt + 1}), retrying in {delay:.1f}s")
                await self._sleep(delay)
                attempt += 1
