"""
Core contracts for the storyline engine.
"""

from agents.core.interfaces import (
    IRegenerationService,
    ISlideGenerationService,
    IDesignSuggestionService,
    IStorylineRepository,
    IMarkdownRenderer,
)

__all__ = [
    'IRegenerationService',
    'ISlideGenerationService',
    'IDesignSuggestionService',
    'IStorylineRepository',
    'IMarkdownRenderer',
]
