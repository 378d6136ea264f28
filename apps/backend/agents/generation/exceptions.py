"""
Exception hierarchy for the storyline engine.

Validation errors are surfaced immediately and never retried. Service errors
describe what the external agent service answered; only rate limits are
retryable, and only on the regeneration path.
"""

import random
from typing import Optional, Dict, Any


class StorylineError(Exception):
    """Base exception for all storyline errors"""

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def __str__(self):
        parts = [super().__str__()]
        if self.cause:
            parts.append(f" (caused by: {type(self.cause).__name__}: {str(self.cause)})")
        if self.context:
            parts.append(f" Context: {self.context}")
        return "".join(parts)


# === Validation exceptions ===

class ValidationError(StorylineError):
    """Precondition failed; nothing was sent and nothing changed"""
    pass


class NothingToRegenerateError(ValidationError):
    """Every section is locked"""

    def __init__(self, message: str = "No draft sections to regenerate", **kwargs):
        super().__init__(message, **kwargs)


class UnsavedStorylineError(ValidationError):
    """Storyline has no persisted id"""

    def __init__(self, message: str = "Storyline must be saved before regenerating", **kwargs):
        super().__init__(message, **kwargs)


class SectionNotFoundError(ValidationError):
    """Section id is not part of the storyline"""

    def __init__(self, section_id: str, **kwargs):
        super().__init__(f"Section not found: {section_id}", **kwargs)
        self.section_id = section_id
        self.context.update({'section_id': section_id})


class RequestInProgressError(ValidationError):
    """A conflicting request for the same target is already running"""
    pass


class SuggestionNotApplicableError(ValidationError):
    """Layout preview missing or computed for another layout"""
    pass


class RateLimitExhaustedError(ValidationError):
    """Rate-limit retries used up"""
    pass


# === Service exceptions ===

class ServiceError(StorylineError):
    """External agent service answered with an error"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        detail: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.status = status
        self.detail = detail
        if status is not None:
            self.context.update({'status': status})

    @property
    def user_message(self) -> str:
        """Detail from the response when available, message otherwise"""
        return self.detail or self.message


class ServiceUnavailableError(ServiceError):
    """Network failure or 5xx"""
    pass


class RateLimitError(ServiceError):
    """HTTP 429 from the agent service"""
    pass


class InvalidResponseError(ServiceError):
    """Response could not be used at all"""
    pass


# === Orchestration exceptions ===

class SlideGenerationError(StorylineError):
    """Slide generation failed for one section"""

    def __init__(self, section_id: str, section_title: str, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.section_id = section_id
        self.section_title = section_title
        self.context.update({
            'section_id': section_id,
            'section_title': section_title
        })


# === Persistence exceptions ===

class PersistenceError(StorylineError):
    """Storyline persistence error"""
    pass


# === Configuration exceptions ===

class ConfigurationError(StorylineError):
    """Configuration error"""
    pass


# === Recovery helpers ===

def is_retryable(error: Exception) -> bool:
    """Only rate limits are retried"""
    return isinstance(error, RateLimitError)


def get_retry_delay(
    error: Exception,
    attempt: int,
    base_delay: float = 2.0,
    max_delay: float = 30.0,
    jitter: float = 0.0
) -> float:
    """Exponential backoff delay for a zero-based retry attempt"""
    delay = min(max_delay, base_delay * (2 ** attempt))
    if jitter > 0:
        delay += random.uniform(0, delay * jitter)
    return delay
