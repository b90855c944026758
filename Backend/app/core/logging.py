# Backend/app/core/logging.py
from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, bound_contextvars, clear_contextvars

# Key-based redaction; the webhook secret and DSNs never reach the logs.
_SECRET_KEYS = {
    "authorization", "auth", "token", "access_token", "webhook_token",
    "api_key", "apikey", "password", "pwd", "secret", "database_url", "dsn",
}


def _add_service(service_name: str):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return _inner


def _secret_guard(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for k in list(event_dict.keys()):
        if str(k).lower() in _SECRET_KEYS:
            event_dict[k] = "***redacted***"
    return event_dict


_logger: Optional[structlog.BoundLogger] = None


def configure_logging(service_name: str = "api", *, level: int = logging.INFO) -> None:
    """
    One JSON-lines structlog stack for the API and the ingest worker.

    Every line carries ``ts``, ``level``, ``service`` and ``event``, plus
    ``request_id`` (API) or ``run_id`` (worker) when one is bound.
    """
    global _logger

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.add_log_level,
            _add_service(service_name),
            _secret_guard,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _logger = structlog.get_logger()


def get_logger() -> structlog.BoundLogger:
    if _logger is None:
        configure_logging("api")
    return _logger


def bind_request_id(request_id: str) -> None:
    bind_contextvars(request_id=request_id)


def clear_log_context() -> None:
    clear_contextvars()


@contextmanager
def with_run_id(run_id: Optional[str] = None) -> Iterator[str]:
    """Tag every log line of one ingestion cycle with the same ``run_id``."""
    rid = run_id or uuid.uuid4().hex
    with bound_contextvars(run_id=rid):
        yield rid


logger = get_logger()
