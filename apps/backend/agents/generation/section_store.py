"""
Section State Store

Owns the live storyline: ordered sections, lock/status flags, selected layouts
and the cached AI layout previews.

Every mutation is a named command applied by `dispatch`, which swaps in a new
Storyline snapshot, bumps `revision` and notifies subscribers. Snapshots handed
out by the store must be treated as read-only.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Union

from agents.generation.content_normalizer import normalize_section, normalize_sections
from agents.generation.exceptions import (
    SectionNotFoundError,
    SuggestionNotApplicableError,
    ValidationError,
)
from agents.generation.layout_catalog import normalize_layout_id
from models.section import LayoutPreview, Section
from models.storyline import Storyline
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

# Keys a patch may never change; they have dedicated commands
PROTECTED_PATCH_KEYS = ("id", "order", "locked", "lockedAt")

# Section fields an applied suggestion never overrides
SUGGESTION_PRESERVED_KEYS = (
    "id", "order", "locked", "status", "framework", "lockedAt", "lockedBy", "layoutPreview",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============= Commands =============

@dataclass(frozen=True)
class UpdateSection:
    section_id: str
    patch: Dict[str, Any]


@dataclass(frozen=True)
class LockSection:
    section_id: str
    locked: bool
    locked_by: Optional[str] = None


@dataclass(frozen=True)
class ApplyLayout:
    """Select a layout for one section, or for every section when section_id is None"""
    layout: str
    section_id: Optional[str] = None


@dataclass(frozen=True)
class RemoveSection:
    section_id: str


@dataclass(frozen=True)
class SetLayoutPreview:
    section_id: str
    preview: LayoutPreview
    select_layout: bool = False


@dataclass(frozen=True)
class ApplySuggestion:
    section_id: str
    selected_layout: Optional[str] = None


@dataclass(frozen=True)
class MergeSections:
    """Replace sections by id; locked sections are skipped unless forced"""
    sections: List[Section]
    overwrite_locked: bool = False


@dataclass(frozen=True)
class ReplaceStoryline:
    storyline: Storyline
    dirty: bool = True


@dataclass(frozen=True)
class MarkSaved:
    storyline_id: Optional[str] = None
    # Revision that was persisted; later edits keep the store dirty
    saved_revision: Optional[int] = None


Command = Union[
    UpdateSection, LockSection, ApplyLayout, RemoveSection, SetLayoutPreview,
    ApplySuggestion, MergeSections, ReplaceStoryline, MarkSaved,
]


@dataclass
class ViewState:
    """
    Caller-owned UI state (selection, collapsed sections, save flash).

    Never stored inside the store; passed in and returned by the calls that
    must keep it consistent.
    """
    current_index: int = 0
    collapsed: Set[str] = field(default_factory=set)
    just_saved: bool = False


Subscriber = Callable[[Storyline, Command], None]


def reindex(sections: List[Section]) -> List[Section]:
    """Rewrite `order` to 0..n-1 following list position"""
    return [
        section if section.order == index else section.model_copy(update={"order": index})
        for index, section in enumerate(sections)
    ]


class SectionStore:
    """
    Single owner of the canonical section list.

    All mutations are synchronous; the contiguous-order invariant holds after
    every dispatch.
    """

    def __init__(self, storyline: Union[Storyline, Dict[str, Any], None] = None):
        self._storyline = self._prepare(storyline)
        self._subscribers: List[Subscriber] = []
        self.revision = 0
        self.dirty = False

    @staticmethod
    def _prepare(storyline: Union[Storyline, Dict[str, Any], None]) -> Storyline:
        if storyline is None:
            return Storyline()
        if isinstance(storyline, Storyline):
            raw = storyline.model_dump()
        else:
            raw = dict(storyline)
        # Persisted records carry their id as `_id`
        stored_id = raw.pop("_id", None)
        if not raw.get("id") and stored_id:
            raw["id"] = str(stored_id)
        sections = normalize_sections(raw.pop("sections", None) or [])
        sections.sort(key=lambda s: s.order)
        return Storyline.model_validate({**raw, "sections": reindex(sections)})

    # ============= Reads =============

    @property
    def storyline(self) -> Storyline:
        return self._storyline

    @property
    def sections(self) -> List[Section]:
        return list(self._storyline.sections)

    def get_section(self, section_id: str) -> Section:
        section = self._storyline.section_by_id(section_id)
        if section is None:
            raise SectionNotFoundError(section_id)
        return section

    def has_section(self, section_id: str) -> bool:
        return self._storyline.section_by_id(section_id) is not None

    # ============= Subscription =============

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a change listener; returns the unsubscribe callable"""
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def _notify(self, command: Command) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(self._storyline, command)
            except Exception as e:
                logger.error(f"[STORE] Subscriber failed for {type(command).__name__}: {e}")

    # ============= Dispatch =============

    def dispatch(self, command: Command) -> Storyline:
        """Apply a command, publish the new snapshot and return it"""
        handler = self._handlers().get(type(command))
        if handler is None:
            raise ValidationError(f"Unknown command: {type(command).__name__}")

        storyline, dirty = handler(self._storyline, command)

        self._storyline = storyline
        self.dirty = dirty
        self.revision += 1
        logger.debug(f"[STORE] {type(command).__name__} -> revision {self.revision} (dirty={self.dirty})")

        self._notify(command)
        return storyline

    def _handlers(self) -> Dict[type, Callable]:
        return {
            UpdateSection: self._update_section,
            LockSection: self._lock_section,
            ApplyLayout: self._apply_layout,
            RemoveSection: self._remove_section,
            SetLayoutPreview: self._set_layout_preview,
            ApplySuggestion: self._apply_suggestion,
            MergeSections: self._merge_sections,
            ReplaceStoryline: self._replace_storyline,
            MarkSaved: self._mark_saved,
        }

    # ============= Reducers =============

    def _replace_section(self, storyline: Storyline, updated: Section) -> Storyline:
        sections = [updated if s.id == updated.id else s for s in storyline.sections]
        return storyline.model_copy(update={"sections": sections})

    def _update_section(self, storyline: Storyline, command: UpdateSection):
        section = self.get_section(command.section_id)
        patch = {k: v for k, v in command.patch.items() if k not in PROTECTED_PATCH_KEYS}

        merged = section.model_dump()
        merged.update(patch)
        merged["updated_at"] = _now()

        updated = normalize_section(merged, section.order)
        return self._replace_section(storyline, updated), True

    def _lock_section(self, storyline: Storyline, command: LockSection):
        section = self.get_section(command.section_id)
        if command.locked:
            update = {"locked": True, "status": "final", "lockedAt": _now(), "lockedBy": command.locked_by}
        else:
            update = {"locked": False, "status": "draft", "lockedAt": None, "lockedBy": None}
        update["updated_at"] = _now()
        return self._replace_section(storyline, section.model_copy(update=update)), True

    def _apply_layout(self, storyline: Storyline, command: ApplyLayout):
        layout_id = normalize_layout_id(command.layout)
        if layout_id is None:
            raise ValidationError(f"Unknown layout: {command.layout}")

        stamp = _now()
        if command.section_id is None:
            sections = [s.model_copy(update={"layout": layout_id, "layoutAppliedAt": stamp}) for s in storyline.sections]
            logger.info(f"[STORE] Applied layout '{layout_id}' to all {len(sections)} sections")
            return storyline.model_copy(update={"sections": sections}), True

        section = self.get_section(command.section_id)
        updated = section.model_copy(update={"layout": layout_id, "layoutAppliedAt": stamp})
        return self._replace_section(storyline, updated), True

    def _remove_section(self, storyline: Storyline, command: RemoveSection):
        self.get_section(command.section_id)
        remaining = [s for s in storyline.sections if s.id != command.section_id]
        return storyline.model_copy(update={"sections": reindex(remaining)}), True

    def _set_layout_preview(self, storyline: Storyline, command: SetLayoutPreview):
        section = self.get_section(command.section_id)
        update: Dict[str, Any] = {"layoutPreview": command.preview}
        if command.select_layout and command.preview.layout:
            update["layout"] = command.preview.layout
        return self._replace_section(storyline, section.model_copy(update=update)), True

    def _apply_suggestion(self, storyline: Storyline, command: ApplySuggestion):
        section = self.get_section(command.section_id)
        preview = section.layoutPreview
        if preview is None:
            raise SuggestionNotApplicableError(f"Section {section.id} has no layout suggestion")

        selected = command.selected_layout or section.layout
        if normalize_layout_id(selected) != preview.layout:
            raise SuggestionNotApplicableError(
                f"Suggestion for section {section.id} was computed for '{preview.layout}', "
                f"but '{selected}' is selected",
                context={"section_id": section.id, "selected": selected, "suggested": preview.layout}
            )

        current = section.model_dump()
        promoted = {k: v for k, v in (preview.data or {}).items() if k not in SUGGESTION_PRESERVED_KEYS}
        current.update({k: v for k, v in promoted.items() if v not in (None, "", [], {})})
        current.update({
            "layout": preview.layout,
            "layoutAppliedAt": _now(),
            "updated_at": _now(),
        })

        updated = normalize_section(current, section.order)
        logger.info(f"[STORE] Applied design suggestion '{preview.layout}' to section {section.id}")
        return self._replace_section(storyline, updated), True

    def _merge_sections(self, storyline: Storyline, command: MergeSections):
        incoming = {s.id: s for s in command.sections}
        sections = []
        for section in storyline.sections:
            replacement = incoming.get(section.id)
            if replacement is None or (section.is_locked and not command.overwrite_locked):
                sections.append(section)
            else:
                sections.append(replacement.model_copy(update={"order": section.order}))
        return storyline.model_copy(update={"sections": sections}), True

    def _replace_storyline(self, storyline: Storyline, command: ReplaceStoryline):
        return self._prepare(command.storyline), command.dirty

    def _mark_saved(self, storyline: Storyline, command: MarkSaved):
        if command.storyline_id:
            storyline = storyline.model_copy(update={"id": command.storyline_id})
        if command.saved_revision is not None and command.saved_revision != self.revision:
            logger.debug(f"[STORE] Saved revision {command.saved_revision} is behind {self.revision}; still dirty")
            return storyline, self.dirty
        return storyline, False

    # ============= Convenience API =============

    def update_section(self, section_id: str, patch: Dict[str, Any]) -> Storyline:
        return self.dispatch(UpdateSection(section_id, patch))

    def toggle_lock(self, section_id: str, locked: bool, locked_by: Optional[str] = None) -> Storyline:
        return self.dispatch(LockSection(section_id, locked, locked_by))

    def apply_layout(self, layout: str, section_id: Optional[str] = None) -> Storyline:
        return self.dispatch(ApplyLayout(layout, section_id))

    def remove_section(self, section_id: str, view_state: Optional[ViewState] = None) -> ViewState:
        """Remove a section and return the view state clamped to the new range"""
        view_state = view_state or ViewState()
        self.dispatch(RemoveSection(section_id))

        count = len(self._storyline.sections)
        current_index = min(view_state.current_index, count - 1) if count else 0
        return replace(
            view_state,
            current_index=max(0, current_index),
            collapsed={sid for sid in view_state.collapsed if sid != section_id}
        )

    def set_layout_preview(self, section_id: str, preview: LayoutPreview, select_layout: bool = False) -> Storyline:
        return self.dispatch(SetLayoutPreview(section_id, preview, select_layout))

    def apply_suggestion(self, section_id: str, selected_layout: Optional[str] = None) -> Storyline:
        return self.dispatch(ApplySuggestion(section_id, selected_layout))

    def merge_sections(self, sections: List[Section], overwrite_locked: bool = False) -> Storyline:
        return self.dispatch(MergeSections(list(sections), overwrite_locked))

    def replace_storyline(self, storyline: Storyline, dirty: bool = True) -> Storyline:
        return self.dispatch(ReplaceStoryline(storyline, dirty))

    def mark_saved(self, storyline_id: Optional[str] = None, saved_revision: Optional[int] = None) -> Storyline:
        return self.dispatch(MarkSaved(storyline_id, saved_revision))
