from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class EngineError(Exception):
    kind = "engine_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(EngineError):
    kind = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(EngineError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(EngineError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class ComputationError(EngineError):
    kind = "computation_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def _engine_error_handler(_request: Request, exc: EngineError) -> JSONResponse:
    payload: dict[str, Any] = {"detail": exc.message, "error": exc.kind}
    if exc.details:
        payload["fields"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=payload)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, _engine_error_handler)
