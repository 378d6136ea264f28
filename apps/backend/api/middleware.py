"""
Request tracking for the storyline API.

Agent-backed routes (regeneration, slides, design suggestions) wait on the
external agent service and get a slow-request warning; layout and render
calls are pure and only logged at debug level.
"""
import time
import uuid
from typing import Callable, Dict, Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from setup_logging_optimized import get_logger

logger = get_logger(__name__)

AGENT_BACKED_SUFFIXES = ("/regenerate", "/slides", "/design-suggestion")
SLOW_AGENT_REQUEST_MS = 30_000


def _is_agent_backed(path: str) -> bool:
    return path.rstrip("/").endswith(AGENT_BACKED_SUFFIXES)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (the caller's X-Request-ID when given) and logs it"""

    def __init__(self, app: ASGIApp, slow_request_ms: int = SLOW_AGENT_REQUEST_MS):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms
        self.active_requests: Dict[str, Dict[str, Any]] = {}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        path = request.url.path
        agent_backed = _is_agent_backed(path)
        log = logger.info if agent_backed else logger.debug

        request.state.request_id = request_id
        start_time = time.time()
        self.active_requests[request_id] = {'endpoint': path, 'start_time': start_time}

        if not path.endswith('/health'):
            log(f"[API] {request.method} {path} started ({request_id})")

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(f"[API] {request.method} {path} failed after {duration_ms}ms ({request_id}): {e}")
            raise
        finally:
            self.active_requests.pop(request_id, None)

        duration_ms = int((time.time() - start_time) * 1000)
        if agent_backed and duration_ms > self.slow_request_ms:
            logger.warning(f"[API] Slow agent request {path}: {duration_ms}ms ({request_id})")
        elif not path.endswith('/health'):
            log(f"[API] {request.method} {path} -> {response.status_code} in {duration_ms}ms ({request_id})")

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)
        return response

    def in_flight(self, agent_backed_only: bool = False) -> int:
        """Requests currently being processed"""
        if not agent_backed_only:
            return len(self.active_requests)
        return sum(1 for r in self.active_requests.values() if _is_agent_backed(r['endpoint']))
