import logging
import re
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"

# Client supplied ids end up in every log line.
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def _incoming_request_id(request: Request) -> Optional[str]:
    for header in (REQUEST_ID_HEADER, CORRELATION_ID_HEADER):
        value = (request.headers.get(header) or "").strip()
        if value and _SAFE_REQUEST_ID.match(value):
            return value
    return None


def assign_request_id(request: Request) -> str:
    request_id = _incoming_request_id(request) or uuid.uuid4().hex
    request.state.request_id = request_id
    _request_id.set(request_id)
    return request_id


class RequestIdFilter(logging.Filter):
    """Stamp ``record.request_id``; ``-`` outside an HTTP request (cron scripts, dispatcher jobs)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True
