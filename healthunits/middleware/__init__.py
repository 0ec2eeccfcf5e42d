from healthunits.middleware.request_logging import (
    SEARCH_OUTCOME_EMPTY,
    SEARCH_OUTCOME_INVALID,
    SEARCH_OUTCOME_NO_SUCH_PAGE,
    SEARCH_OUTCOME_OK,
    SEARCH_OUTCOME_STORE_UNAVAILABLE,
    RequestLoggingMiddleware,
    set_search_outcome,
)

__all__ = [
    "RequestLoggingMiddleware",
    "SEARCH_OUTCOME_EMPTY",
    "SEARCH_OUTCOME_INVALID",
    "SEARCH_OUTCOME_NO_SUCH_PAGE",
    "SEARCH_OUTCOME_OK",
    "SEARCH_OUTCOME_STORE_UNAVAILABLE",
    "set_search_outcome",
]
