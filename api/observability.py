from __future__ import annotations

import contextvars
import logging
import time
from typing import Optional
from uuid import uuid4

from workout_core.logging_config import event_fields, setup_logging

_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return _request_id_var.get()


def set_request_id(value: Optional[str]):
    return _request_id_var.set(value)


def reset_request_id(token) -> None:
    _request_id_var.reset(token)


def new_request_id() -> str:
    return uuid4().hex


class RequestIdFilter(logging.Filter):
    """Stamps the active request id on every record as ``ctx_request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = get_request_id()
        if request_id and not hasattr(record, "ctx_request_id"):
            record.ctx_request_id = request_id
        return True


def configure_logging(level: str = "INFO") -> None:
    setup_logging(level)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())


def request_log_fields(*, method: str, path: str, status_code: int, duration_ms: float, client_ip: Optional[str]) -> dict[str, object]:
    return event_fields(
        method=method,
        path=path,
        status_code=int(status_code),
        duration_ms=round(float(duration_ms), 2),
        client_ip=client_ip or "",
    )


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0
