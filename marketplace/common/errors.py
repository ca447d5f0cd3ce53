"""Base error type and HTTP translation shared by marketplace services."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

_LOGGER = logging.getLogger(__name__)


class ServiceError(Exception):
    """Domain failure that maps onto a specific HTTP status.

    Subclasses set ``status_code`` and a default ``code``; callers pass a
    message naming the violated rule and optional structured ``context``.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "service_error"

    def __init__(self, message: str, *, code: str | None = None, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, "context": self.context}


async def _handle_service_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ServiceError)
    level = logging.WARNING if exc.status_code >= 500 else logging.INFO
    _LOGGER.log(
        level,
        "%s %s rejected with %s (%s): %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.code,
        exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def register_error_handlers(app: FastAPI) -> None:
    """Translate every ``ServiceError`` raised by a route into a JSON response."""

    app.add_exception_handler(ServiceError, _handle_service_error)
