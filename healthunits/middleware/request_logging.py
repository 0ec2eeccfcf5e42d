"""
Request logging middleware: one log line per request.

Unit search routes leave their outcome on request.state (see SEARCH_OUTCOME_*),
so the same line tells a real empty result apart from a missing page or an
unavailable store, and the search metrics are fed from here.
"""
import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from healthunits.monitoring.metrics import record_request, record_search

logger = logging.getLogger(__name__)

SEARCH_OUTCOME_OK = "ok"
SEARCH_OUTCOME_EMPTY = "empty"
SEARCH_OUTCOME_NO_SUCH_PAGE = "no_such_page"
SEARCH_OUTCOME_INVALID = "invalid"
SEARCH_OUTCOME_STORE_UNAVAILABLE = "store_unavailable"


def set_search_outcome(request: Request, outcome: str, result_count: int | None = None) -> None:
    request.state.search_outcome = outcome
    request.state.search_result_count = result_count


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration; add search outcome and result count on search routes."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        record_request(response.status_code)

        outcome = getattr(request.state, "search_outcome", None)
        if outcome is None:
            logger.info(
                "request method=%s path=%s status=%s duration_ms=%.1f client=%s",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                _client_ip(request),
            )
            return response

        record_search(outcome)
        logger.info(
            "request method=%s path=%s status=%s search_outcome=%s results=%s duration_ms=%.1f client=%s",
            request.method,
            request.url.path,
            response.status_code,
            outcome,
            getattr(request.state, "search_result_count", None),
            duration_ms,
            _client_ip(request),
        )
        return response
