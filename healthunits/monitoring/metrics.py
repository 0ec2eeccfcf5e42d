"""In-memory request and search metrics for the /metrics endpoint."""
import time
from collections.abc import MutableMapping
from threading import Lock

_start_time = time.monotonic()
_counts: MutableMapping[str, int] = {}
_lock = Lock()


def _incr(bucket: str) -> None:
    with _lock:
        _counts[bucket] = _counts.get(bucket, 0) + 1


def record_request(status_code: int) -> None:
    if 200 <= status_code < 300:
        bucket = "2xx"
    elif 400 <= status_code < 500:
        bucket = "4xx"
    elif status_code >= 500:
        bucket = "5xx"
    else:
        bucket = "other"
    _incr(bucket)


def record_search(outcome: str) -> None:
    """Count a unit search by outcome (ok, empty, no_such_page, invalid, store_unavailable)."""
    with _lock:
        _counts["searches"] = _counts.get("searches", 0) + 1
        _counts[f"search_{outcome}"] = _counts.get(f"search_{outcome}", 0) + 1


def get_metrics() -> dict:
    with _lock:
        counts = dict(_counts)
    uptime_seconds = time.monotonic() - _start_time
    requests = {k: v for k, v in counts.items() if k in ("2xx", "4xx", "5xx", "other")}
    return {
        "requests_total": sum(requests.values()),
        "requests_2xx": counts.get("2xx", 0),
        "requests_4xx": counts.get("4xx", 0),
        "requests_5xx": counts.get("5xx", 0),
        "searches_total": counts.get("searches", 0),
        "searches_empty": counts.get("search_empty", 0),
        "searches_no_such_page": counts.get("search_no_such_page", 0),
        "searches_invalid": counts.get("search_invalid", 0),
        "searches_store_unavailable": counts.get("search_store_unavailable", 0),
        "uptime_seconds": round(uptime_seconds, 1),
    }
