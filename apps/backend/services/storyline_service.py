"""
HTTP repository for the storyline persistence API.

The persistence backend is external; this service only speaks its JSON
contract: list by deliverable, create, update by id.
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from agents.core.interfaces import IStorylineRepository
from agents.generation.config import PersistenceConfig, get_config
from agents.generation.exceptions import PersistenceError, ServiceUnavailableError
from setup_logging_optimized import get_logger

logger = get_logger(__name__)


class StorylineService(IStorylineRepository):
    """Storyline CRUD over the persistence API"""

    def __init__(self, config: Optional[PersistenceConfig] = None, timeout: float = 30):
        self.config = config or get_config().persistence
        self.base_url = f"{self.config.base_url.rstrip('/')}/api/storylines"
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url, **kwargs) as response:
                    if response.status >= 500:
                        raise ServiceUnavailableError(
                            f"Storyline API failed ({response.status})",
                            status=response.status,
                            detail=await response.text()
                        )
                    if response.status >= 400:
                        raise PersistenceError(
                            f"Storyline API rejected {method} ({response.status}): {await response.text()}"
                        )
                    return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ServiceUnavailableError("Storyline API unreachable", cause=e)

    @staticmethod
    def _unwrap(body: Any) -> Any:
        """The API answers either the resource or {success, data}"""
        if isinstance(body, dict) and 'data' in body and isinstance(body['data'], (dict, list)):
            return body['data']
        return body

    async def list_by_deliverable(self, deliverable_id: str) -> List[Dict[str, Any]]:
        body = self._unwrap(await self._request("GET", self.base_url, params={"deliverableId": deliverable_id}))
        if isinstance(body, dict):
            body = body.get('storylines') or []
        return body if isinstance(body, list) else []

    async def create(self, storyline: Dict[str, Any]) -> Dict[str, Any]:
        body = self._unwrap(await self._request("POST", self.base_url, json=storyline))
        logger.info(f"[PERSIST] Created storyline {body.get('id') or body.get('_id') if isinstance(body, dict) else None}")
        return body if isinstance(body, dict) else {}

    async def update(self, storyline_id: str, storyline: Dict[str, Any]) -> Dict[str, Any]:
        body = self._unwrap(await self._request("PUT", f"{self.base_url}/{storyline_id}", json=storyline))
        return body if isinstance(body, dict) else {}
