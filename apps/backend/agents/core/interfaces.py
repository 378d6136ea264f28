"""
Clean interfaces for the storyline engine.

Design principles:
- Small, focused interfaces
- External collaborators behind ABCs so tests use fakes
- Payloads cross these seams as plain dicts (agent output is untrusted)
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional


# ============= Agent Interfaces =============

class IRegenerationService(ABC):
    """Regenerates the draft sections of a storyline"""

    @abstractmethod
    async def regenerate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send locked-section context plus draft sections.

        Returns the raw service response; replacement sections are expected
        under `sections` (or `storyline.sections`).
        """
        pass


class ISlideGenerationService(ABC):
    """Generates a slide deck for one section"""

    @abstractmethod
    async def generate_slides(
        self,
        section: Dict[str, Any],
        storyline: Dict[str, Any],
        layout: str
    ) -> Any:
        """Return the raw agent payload; slides are extracted by the caller"""
        pass


class IDesignSuggestionService(ABC):
    """Recommends a layout (and optionally richer content) for one section"""

    @property
    @abstractmethod
    def agent_id(self) -> str:
        """Identity of the design agent; keys the suggestion cache"""
        pass

    @abstractmethod
    async def suggest(
        self,
        section: Dict[str, Any],
        storyline: Dict[str, Any],
        project: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Return the raw agent payload"""
        pass


# ============= Infrastructure Interfaces =============

class IStorylineRepository(ABC):
    """Storyline persistence API"""

    @abstractmethod
    async def list_by_deliverable(self, deliverable_id: str) -> List[Dict[str, Any]]:
        """Storylines for a deliverable, newest first"""
        pass

    @abstractmethod
    async def create(self, storyline: Dict[str, Any]) -> Dict[str, Any]:
        """Create a storyline; the response carries the assigned id"""
        pass

    @abstractmethod
    async def update(self, storyline_id: str, storyline: Dict[str, Any]) -> Dict[str, Any]:
        """Update a storyline by id"""
        pass


class IMarkdownRenderer(ABC):
    """Markdown to HTML/chart extraction, consumed as a black box"""

    @abstractmethod
    def render(self, markdown: str) -> Dict[str, Any]:
        """Return {'html': str, 'charts': [...]}"""
        pass
