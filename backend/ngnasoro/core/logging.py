from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

_request_id: ContextVar[str] = ContextVar("request_id", default="-")
_actor_id: ContextVar[str] = ContextVar("actor_id", default="-")

logger = logging.getLogger("ngnasoro")


def set_request_id(value: Optional[str] = None) -> str:
    request_id = value or uuid.uuid4().hex
    _request_id.set(request_id)
    return request_id


def get_request_id() -> str:
    return _request_id.get()


def set_actor_id(value: Optional[str | uuid.UUID] = None) -> None:
    _actor_id.set(str(value) if value is not None else "-")


def get_actor_id() -> str:
    return _actor_id.get()


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.actor_id = get_actor_id()
        return True


def setup_logging(level: str = "INFO") -> None:
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s "
        "actor_id=%(actor_id)s - %(message)s"
    )
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the logging context and echoes it back."""

    header_name = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = set_request_id(request.headers.get(self.header_name))
        set_actor_id(None)
        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response
