"""Error taxonomy and the FastAPI handlers that translate it into responses."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

logger = logging.getLogger(__name__)

LOGIN_PATH = "/users/login"
INCORRECT_CREDENTIALS = "Incorrect Credentials"
GENERIC_FAILURE = "Something went wrong on our side. Please try again."


class TodoAppError(Exception):
    """Base exception for the application."""


class InvalidCredentials(TodoAppError):
    """The submitted email/password pair does not match a stored user."""

    def __init__(self, message: str = INCORRECT_CREDENTIALS) -> None:
        super().__init__(message)


class ValidationFailed(TodoAppError):
    """One or more submitted fields were rejected."""

    def __init__(self, errors: Mapping[str, Iterable[str]]) -> None:
        self.errors: Dict[str, List[str]] = {
            field: list(reasons) for field, reasons in errors.items()
        }
        super().__init__(
            "; ".join(f"{field}: {', '.join(reasons)}" for field, reasons in self.errors.items())
        )

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "ValidationFailed":
        errors: Dict[str, List[str]] = {}
        for field, reason in pairs:
            errors.setdefault(field, []).append(reason)
        return cls(errors)


class DuplicateField(ValidationFailed):
    """A uniqueness rule was violated for ``field``."""

    def __init__(self, field: str, reason: Optional[str] = None) -> None:
        self.field = field
        super().__init__({field: [reason or f"{field} is already taken"]})


class InternalError(TodoAppError):
    """Failures that must surface as an opaque 5xx response."""


class SessionBackendFailure(InternalError):
    """The session store could not complete an operation."""


class HashingBackendFailure(InternalError):
    """The password hashing worker pool failed."""


class RecordStoreFailure(InternalError):
    """The user record store failed or timed out."""


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "-"


def install_error_handlers(app: FastAPI) -> None:
    """Register exception handlers for the taxonomy on ``app``."""

    @app.exception_handler(ValidationFailed)
    async def _validation_failed(request: Request, exc: ValidationFailed) -> JSONResponse:
        logger.debug("validation failed for %s: %s", request.url.path, exc.errors)
        return JSONResponse(
            {"detail": "Validation failed", "errors": exc.errors},
            status_code=422,
        )

    @app.exception_handler(InvalidCredentials)
    async def _invalid_credentials(request: Request, exc: InvalidCredentials) -> RedirectResponse:
        logger.debug("authentication failed for %s", request.url.path)
        response = RedirectResponse(LOGIN_PATH, status_code=status.HTTP_303_SEE_OTHER)
        request.app.state.flash.error(response, str(exc))
        return response

    @app.exception_handler(InternalError)
    async def _internal_error(request: Request, exc: InternalError) -> JSONResponse:
        logger.error(
            "%s while handling %s %s (request %s)",
            type(exc).__name__,
            request.method,
            request.url.path,
            _request_id(request),
            exc_info=exc,
        )
        return JSONResponse(
            {"detail": GENERIC_FAILURE},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


__all__ = [
    "DuplicateField",
    "GENERIC_FAILURE",
    "HashingBackendFailure",
    "INCORRECT_CREDENTIALS",
    "InternalError",
    "InvalidCredentials",
    "LOGIN_PATH",
    "RecordStoreFailure",
    "SessionBackendFailure",
    "TodoAppError",
    "ValidationFailed",
    "install_error_handlers",
]
