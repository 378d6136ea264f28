"""
Client for the external custom-agent service.

All storyline agents (regeneration, slides, market sizing design) are invoked
through `POST {base}/api/custom-agents/{agentId}/execute` with an
`X-API-Key` header and a `{message, context}` body.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from agents.core.interfaces import IDesignSuggestionService, IRegenerationService, ISlideGenerationService
from agents.generation.config import AgentServiceConfig, get_agent_config, get_config
from agents.generation.exceptions import RateLimitError, ServiceError, ServiceUnavailableError
from agents.generation.heuristic_extraction import parse_json
from agents.prompts.storyline_prompts import (
    get_design_suggestion_prompt,
    get_regeneration_prompt,
    get_slide_generation_prompt,
)
from setup_logging_optimized import get_logger

logger = get_logger(__name__)


def _error_detail(body: Any) -> Optional[str]:
    """Verbatim error detail from a JSON or text error body"""
    if isinstance(body, dict):
        for key in ("details", "error", "message"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value)
        return None
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


class AgentClient:
    """Thin aiohttp wrapper around the custom-agent execute endpoint"""

    def __init__(
        self,
        config: Optional[AgentServiceConfig] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.config = config or get_agent_config()
        self._session = session
        self.headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.config.api_key
        }

    def _url(self, agent_id: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/api/custom-agents/{agent_id}/execute"

    async def execute(self, agent_id: str, message: str, context: Dict[str, Any]) -> Any:
        """Run an agent and return its parsed response body"""
        payload = {"message": message, "context": context}
        if get_config().logging.log_agent_payloads:
            logger.debug(f"[AGENT] Payload for {agent_id}: {json.dumps(payload, default=str)[:2000]}")

        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        session = self._session
        owns_session = session is None
        try:
            if owns_session:
                session = aiohttp.ClientSession(timeout=timeout)

            async with session.post(self._url(agent_id), headers=self.headers, json=payload) as response:
                text = await response.text()
                body = parse_json(text)
                if body is None:
                    body = text

                if response.status == 429:
                    raise RateLimitError(
                        f"Agent {agent_id} rate limited",
                        status=response.status,
                        detail=_error_detail(body)
                    )
                if response.status >= 500:
                    raise ServiceUnavailableError(
                        f"Agent {agent_id} failed ({response.status})",
                        status=response.status,
                        detail=_error_detail(body)
                    )
                if response.status >= 400:
                    raise ServiceError(
                        f"Agent {agent_id} rejected the request ({response.status})",
                        status=response.status,
                        detail=_error_detail(body)
                    )

                logger.debug(f"[AGENT] {agent_id} answered {response.status}")
                return body

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[AGENT] Request to {agent_id} failed: {e}")
            raise ServiceUnavailableError(f"Agent {agent_id} unreachable", cause=e)
        finally:
            # Shield session cleanup from cancellation
            if owns_session and session is not None:
                await asyncio.shield(session.close())


class RegenerationAgentService(IRegenerationService):
    """Storyline regeneration through the storyline agent"""

    def __init__(self, client: Optional[AgentClient] = None, agent_id: Optional[str] = None):
        self.client = client or AgentClient()
        self.agent_id = agent_id or self.client.config.regeneration_agent_id

    async def regenerate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.execute(self.agent_id, get_regeneration_prompt(payload), payload)


class SlideAgentService(ISlideGenerationService):
    """Per-section slide generation through the slide agent"""

    def __init__(self, client: Optional[AgentClient] = None, agent_id: Optional[str] = None):
        self.client = client or AgentClient()
        self.agent_id = agent_id or self.client.config.slide_agent_id

    async def generate_slides(self, section: Dict[str, Any], storyline: Dict[str, Any], layout: str) -> Any:
        context = {
            "sectionId": section.get("id"),
            "section": section,
            "storyline": storyline,
            "layout": layout
        }
        return await self.client.execute(
            self.agent_id,
            get_slide_generation_prompt(section, storyline, layout),
            context
        )


class DesignAgentService(IDesignSuggestionService):
    """Market sizing layout suggestions through the design agent"""

    def __init__(self, client: Optional[AgentClient] = None, agent_id: Optional[str] = None):
        self.client = client or AgentClient()
        self._agent_id = agent_id or self.client.config.design_agent_id

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @staticmethod
    def specialist_output(section: Dict[str, Any]) -> Any:
        """Framework specialist data the design agent should reason about"""
        if section.get("frameworkData"):
            return section["frameworkData"]
        if section.get("charts"):
            return {
                "charts": section["charts"],
                "insights": section.get("insights") or [],
                "citations": section.get("citations") or []
            }
        return section

    async def suggest(
        self,
        section: Dict[str, Any],
        storyline: Dict[str, Any],
        project: Optional[Dict[str, Any]] = None
    ) -> Any:
        context = {
            "requestType": "market_sizing_layout_suggestion",
            "agentRole": "design_market_sizing",
            "projectId": (project or {}).get("id"),
            "sectionId": section.get("id"),
            "sectionTitle": section.get("title"),
            "framework": section.get("framework") or "market_sizing",
            "section": section,
            "storyline": storyline,
            "project": project
        }
        return await self.client.execute(
            self._agent_id,
            get_design_suggestion_prompt(section, self.specialist_output(section)),
            context
        )
