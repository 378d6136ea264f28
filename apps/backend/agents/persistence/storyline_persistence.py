"""
Storyline persistence - saves the store's snapshot through the repository and
loads the latest storyline for a deliverable.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from agents.core.interfaces import IStorylineRepository
from agents.generation.config import PersistenceConfig, get_config
from agents.generation.exceptions import PersistenceError, ServiceUnavailableError
from agents.generation.section_store import SectionStore
from models.storyline import Storyline
from setup_logging_optimized import get_logger

logger = get_logger(__name__)


class StorylinePersistence:
    """Handles storyline storage with retry on transient failures."""

    def __init__(
        self,
        repository: IStorylineRepository,
        config: Optional[PersistenceConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.repository = repository
        self.config = config or get_config().persistence
        self._sleep = sleep

    async def _with_retry(self, operation: Callable[[], Awaitable[Any]], description: str) -> Any:
        last_error: Optional[Exception] = None
        for attempt in range(self.config.max_retries):
            try:
                return await operation()
            except ServiceUnavailableError as e:
                last_error = e
                if attempt < self.config.max_retries - 1:
                    logger.warning(f"[PERSIST] {description} failed (attempt {attempt + 1}): {e.user_message}")
                    await self._sleep(self.config.retry_delay * (attempt + 1))
        raise PersistenceError(f"{description} failed after {self.config.max_retries} attempts", cause=last_error)

    async def save(self, store: SectionStore) -> Storyline:
        """
        Create or update the store's storyline.

        A new storyline gets its assigned id recorded in the store. The dirty
        flag is cleared only if nothing was dispatched while the save ran.
        """
        storyline = store.storyline
        revision = store.revision
        body = storyline.model_dump(mode='json', exclude={'id'})

        if storyline.is_saved:
            await self._with_retry(lambda: self.repository.update(storyline.id, body), f"Update of {storyline.id}")
            store.mark_saved(saved_revision=revision)
            logger.info(f"[PERSIST] Saved storyline {storyline.id} ({len(storyline.sections)} sections)")
            return store.storyline

        created = await self._with_retry(lambda: self.repository.create(body), "Create storyline")
        storyline_id = _storyline_id(created)
        if not storyline_id:
            raise PersistenceError("Storyline API did not return an id for the created storyline")

        store.mark_saved(storyline_id, saved_revision=revision)
        logger.info(f"[PERSIST] Created storyline {storyline_id}")
        return store.storyline

    async def load_for_deliverable(self, deliverable_id: str) -> Optional[Storyline]:
        """Most recent storyline for a deliverable, or None"""
        records = await self._with_retry(
            lambda: self.repository.list_by_deliverable(deliverable_id),
            f"Load for deliverable {deliverable_id}"
        )
        if not records:
            return None

        latest = dict(records[0])
        latest['id'] = _storyline_id(latest)
        return SectionStore(latest).storyline


def _storyline_id(record: Dict[str, Any]) -> Optional[str]:
    if not isinstance(record, dict):
        return None
    value = record.get('id') or record.get('_id')
    return str(value) if value else None
