"""
Tests for the section state store: commands, invariants and subscriptions.
"""
import pytest

from agents.generation.exceptions import SectionNotFoundError, SuggestionNotApplicableError, ValidationError
from agents.generation.section_store import (
    ApplyLayout,
    LockSection,
    SectionStore,
    ViewState,
)
from models.section import LayoutPreview, Section


def _orders(store):
    return [section.order for section in store.sections]


def test_sections_are_sorted_and_reindexed_on_load():
    store = SectionStore({'sections': [
        {'id': 'c', 'title': 'C', 'order': 7},
        {'id': 'a', 'title': 'A', 'order': 0},
        {'id': 'b', 'title': 'B', 'order': 3},
    ]})

    assert [s.id for s in store.sections] == ['a', 'b', 'c']
    assert _orders(store) == [0, 1, 2]
    assert not store.dirty
    assert store.revision == 0


def test_remove_section_reindexes_and_clamps_view_state(store):
    view = ViewState(current_index=2, collapsed={'s2', 's3'})

    view = store.remove_section('s2', view)

    assert [s.id for s in store.sections] == ['s1', 's3']
    assert _orders(store) == [0, 1]
    assert view.current_index == 1
    assert view.collapsed == {'s3'}


def test_remove_last_section_leaves_index_zero():
    store = SectionStore({'sections': [{'id': 'only', 'title': 'Only'}]})
    view = store.remove_section('only', ViewState(current_index=0))
    assert store.sections == []
    assert view.current_index == 0


def test_remove_unknown_section_raises(store):
    with pytest.raises(SectionNotFoundError):
        store.remove_section('missing')
    assert store.revision == 0


def test_lock_and_unlock(store):
    store.toggle_lock('s1', True, locked_by='analyst@example.com')
    locked = store.get_section('s1')

    assert locked.locked and locked.status == 'final'
    assert locked.lockedAt is not None
    assert locked.lockedBy == 'analyst@example.com'

    store.toggle_lock('s1', False)
    unlocked = store.get_section('s1')

    assert not unlocked.locked and unlocked.status == 'draft'
    assert unlocked.lockedAt is None
    assert unlocked.lockedBy is None


def test_update_ignores_protected_keys(store):
    store.update_section('s1', {'id': 'hijack', 'order': 9, 'locked': True, 'title': 'Renamed', 'points': ['p']})
    section = store.get_section('s1')

    assert section.title == 'Renamed'
    assert section.order == 0
    assert not section.locked
    assert section.updated_at is not None
    assert not store.has_section('hijack')
    assert store.dirty


def test_apply_layout_to_every_section(store):
    store.apply_layout('Timeline')

    assert {s.layout for s in store.sections} == {'timeline'}
    assert all(s.layoutAppliedAt is not None for s in store.sections)


def test_apply_layout_to_one_section(store):
    store.dispatch(ApplyLayout('bcg matrix', 's2'))

    assert store.get_section('s2').layout == 'bcg-matrix'
    assert store.get_section('s1').layout is None


def test_unknown_layout_is_rejected(store):
    with pytest.raises(ValidationError):
        store.apply_layout('carousel')
    assert store.revision == 0
    assert not store.dirty


def test_subscribers_see_each_dispatch_until_unsubscribed(store):
    seen = []
    unsubscribe = store.subscribe(lambda storyline, command: seen.append((storyline, command)))

    store.toggle_lock('s3', True)
    unsubscribe()
    store.toggle_lock('s3', False)

    assert len(seen) == 1
    storyline, command = seen[0]
    assert isinstance(command, LockSection)
    assert storyline.section_by_id('s3').locked
    assert store.revision == 2


def test_failing_subscriber_does_not_block_others(store):
    seen = []

    def broken(storyline, command):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(lambda storyline, command: seen.append(command))

    store.apply_layout('full-width', 's1')

    assert len(seen) == 1


def test_snapshots_are_not_mutated_by_later_dispatches(store):
    before = store.storyline
    store.update_section('s1', {'title': 'Changed'})

    assert before.section_by_id('s1').title == 'Market Sizing'
    assert store.storyline.section_by_id('s1').title == 'Changed'


class TestApplySuggestion:
    def _preview(self):
        return LayoutPreview(
            layout='three-columns',
            agentId='design-agent',
            data={
                'title': 'Enhanced market sizing',
                'keyPoints': ['TAM $5bn', 'SAM $2bn', 'SOM $300m'],
                'id': 'other-id',
                'locked': True,
                'description': '',
            }
        )

    def test_requires_a_preview(self, store):
        with pytest.raises(SuggestionNotApplicableError):
            store.apply_suggestion('s1', 'three-columns')

    def test_rejected_when_selected_layout_differs(self, store):
        store.set_layout_preview('s1', self._preview())

        with pytest.raises(SuggestionNotApplicableError):
            store.apply_suggestion('s1')
        with pytest.raises(SuggestionNotApplicableError):
            store.apply_suggestion('s1', 'full-width')

        assert store.get_section('s1').title == 'Market Sizing'

    def test_promotes_preview_content(self, store):
        store.set_layout_preview('s1', self._preview(), select_layout=True)
        assert store.get_section('s1').layout == 'three-columns'

        store.apply_suggestion('s1', 'Three Columns')
        section = store.get_section('s1')

        assert section.id == 's1'
        assert section.title == 'Enhanced market sizing'
        assert section.keyPoints == ['TAM $5bn', 'SAM $2bn', 'SOM $300m']
        assert section.description == 'How big is the opportunity'
        assert not section.locked
        assert section.layout == 'three-columns'
        assert section.layoutAppliedAt is not None
        assert section.layoutPreview.agentId == 'design-agent'


def test_merge_skips_locked_sections_unless_forced(store):
    replacements = [Section(id='s2', title='New landscape', order=5), Section(id='s1', title='New sizing', order=5)]

    store.merge_sections(replacements)
    assert store.get_section('s1').title == 'New sizing'
    assert store.get_section('s1').order == 0
    assert store.get_section('s2').title == 'Competitive Landscape'

    store.merge_sections(replacements, overwrite_locked=True)
    assert store.get_section('s2').title == 'New landscape'
    assert _orders(store) == [0, 1, 2]


def test_mark_saved_assigns_id_and_clears_dirty():
    store = SectionStore({'sections': [{'id': 'a', 'title': 'A'}]})
    store.update_section('a', {'title': 'B'})
    assert store.dirty
    assert not store.storyline.is_saved

    store.mark_saved('persisted-1')

    assert store.storyline.id == 'persisted-1'
    assert not store.dirty


def test_replace_storyline_normalizes_sections(store):
    store.replace_storyline({'id': 'story-1', 'sections': [{'name': 'Named', 'order': 5}, 'Loose text']}, dirty=False)

    assert [s.title for s in store.sections] == ['Section 2', 'Named']
    assert _orders(store) == [0, 1]
    assert not store.dirty


def test_stored_id_is_taken_from_underscore_id():
    store = SectionStore({'_id': '66f0abc', 'sections': [{'id': 'a', 'title': 'A'}]})

    assert store.storyline.id == '66f0abc'
    assert store.storyline.is_saved
    assert '_id' not in (store.storyline.model_extra or {})


def test_explicit_id_wins_over_underscore_id():
    store = SectionStore({'id': 'story-1', '_id': 'other', 'sections': []})
    assert store.storyline.id == 'story-1'


def test_mark_saved_for_an_older_revision_keeps_store_dirty():
    store = SectionStore({'id': 'story-1', 'sections': [{'id': 'a', 'title': 'A'}]})
    store.update_section('a', {'title': 'B'})
    saving = store.revision

    store.update_section('a', {'title': 'C'})
    store.mark_saved(saved_revision=saving)

    assert store.dirty

    store.mark_saved(saved_revision=store.revision)
    assert not store.dirty
