"""
Shared fixtures and fake agent services for the storyline engine tests.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from agents.core.interfaces import (
    IDesignSuggestionService,
    IMarkdownRenderer,
    IRegenerationService,
    ISlideGenerationService,
    IStorylineRepository,
)
from agents.generation.config import RegenerationConfig
from agents.generation.section_store import SectionStore


async def _maybe_await(callback: Optional[Callable], *args):
    if callback is None:
        return
    outcome = callback(*args)
    if asyncio.iscoroutine(outcome):
        await outcome


class FakeRegenerationService(IRegenerationService):
    """Answers with the queued outcomes; the last one repeats"""

    def __init__(self, *outcomes: Any, on_call: Optional[Callable] = None):
        self.outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []
        self.on_call = on_call

    async def regenerate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(payload)
        await _maybe_await(self.on_call, payload)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSlideService(ISlideGenerationService):
    """Per-section outcomes; sections without one get two generated slides"""

    def __init__(self, outcomes: Optional[Dict[str, Any]] = None):
        self.outcomes = outcomes or {}
        self.calls: List[Dict[str, Any]] = []
        self.active = 0
        self.max_active = 0

    async def generate_slides(self, section: Dict[str, Any], storyline: Dict[str, Any], layout: str) -> Any:
        self.calls.append({'section': section, 'storyline': storyline, 'layout': layout})
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            outcome = self.outcomes.get(section['id'])
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is not None:
                return outcome
            return {
                'success': True,
                'data': {
                    'slides': [
                        {'title': f"{section['title']} overview", 'bullets': ['Point one', 'Point two']},
                        {'title': f"{section['title']} detail", 'summary': 'Supporting detail'},
                    ]
                }
            }
        finally:
            self.active -= 1


class FakeDesignService(IDesignSuggestionService):
    def __init__(
        self,
        response: Any = None,
        agent_id: str = "design-agent",
        gate: Optional[asyncio.Event] = None,
        on_call: Optional[Callable] = None
    ):
        self.response = response if response is not None else {
            'layoutRecommendation': {'id': 'three-columns', 'name': 'Three Columns', 'reason': 'Three segments'},
            'designGuidelines': ['Lead with the total market'],
            'section': {'title': 'Enhanced market sizing', 'keyPoints': ['TAM $5bn', 'SAM $2bn', 'SOM $300m']}
        }
        self._agent_id = agent_id
        self.gate = gate
        self.on_call = on_call
        self.calls: List[Dict[str, Any]] = []

    @property
    def agent_id(self) -> str:
        return self._agent_id

    async def suggest(self, section, storyline, project=None) -> Any:
        self.calls.append({'section': section, 'storyline': storyline, 'project': project})
        if self.gate is not None:
            await self.gate.wait()
        await _maybe_await(self.on_call, section)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class FakeRepository(IStorylineRepository):
    def __init__(self, records: Optional[List[Dict[str, Any]]] = None, failures: int = 0, error: Exception = None):
        self.records = records or []
        self.failures = failures
        self.error = error
        self.created: List[Dict[str, Any]] = []
        self.updated: List[Dict[str, Any]] = []

    def _maybe_fail(self):
        if self.failures > 0:
            self.failures -= 1
            raise self.error

    async def list_by_deliverable(self, deliverable_id: str) -> List[Dict[str, Any]]:
        self._maybe_fail()
        return [r for r in self.records if r.get('deliverableId') == deliverable_id]

    async def create(self, storyline: Dict[str, Any]) -> Dict[str, Any]:
        self._maybe_fail()
        self.created.append(storyline)
        return {**storyline, '_id': 'generated-id'}

    async def update(self, storyline_id: str, storyline: Dict[str, Any]) -> Dict[str, Any]:
        self._maybe_fail()
        self.updated.append({'id': storyline_id, **storyline})
        return {**storyline, 'id': storyline_id}


class FakeMarkdownRenderer(IMarkdownRenderer):
    def __init__(self):
        self.calls = []

    def render(self, markdown: str) -> Dict[str, Any]:
        self.calls.append(markdown)
        return {
            'html': f"<p>{markdown.strip('# ')}</p>",
            'charts': [{'title': 'Rendered chart', 'config': {'type': 'line', 'data': [1, 2, 3]}}]
        }


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
def storyline_data() -> Dict[str, Any]:
    """Saved three-section storyline; the middle section is locked"""
    return {
        'id': 'story-1',
        'deliverableId': 'deliv-1',
        'title': 'Market Entry Storyline',
        'executiveSummary': 'Original summary',
        'sections': [
            {
                'id': 's1',
                'title': 'Market Sizing',
                'description': 'How big is the opportunity',
                'keyPoints': ['TAM: $5bn', 'Growth: 8% CAGR'],
                'framework': 'market_sizing',
                'order': 0,
            },
            {
                'id': 's2',
                'title': 'Competitive Landscape',
                'description': 'Who we compete with',
                'keyPoints': ['Leader: Acme', 'Challenger: Globex'],
                'framework': 'competitive_landscape',
                'locked': True,
                'order': 1,
            },
            {
                'id': 's3',
                'title': 'Recommendations',
                'description': 'What to do next',
                'keyPoints': ['Enter via partnership'],
                'framework': 'recommendations',
                'order': 2,
            },
        ],
    }


@pytest.fixture
def store(storyline_data) -> SectionStore:
    return SectionStore(storyline_data)


@pytest.fixture
def fast_backoff() -> RegenerationConfig:
    return RegenerationConfig(max_retries=3, base_delay=1.0, max_delay=4.0, jitter=0.0)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
