"""FastAPI dependencies implementing the access guard."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..errors import LOGIN_PATH
from .flash import FlashNotifier
from .service import Authenticator
from .session import SESSION_COOKIE_NAME, SessionHandle, SessionPayload
from .throttling import LoginThrottle

logger = logging.getLogger(__name__)


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_flash(request: Request) -> FlashNotifier:
    return request.app.state.flash


def get_login_throttle(request: Request) -> LoginThrottle:
    return request.app.state.login_throttle


def get_session_handle(request: Request) -> SessionHandle:
    """Return the request's :class:`SessionHandle`, creating it once."""

    handle: Optional[SessionHandle] = getattr(request.state, "session_handle", None)
    if handle is None:
        handle = SessionHandle(
            request.app.state.session_store,
            request.cookies.get(SESSION_COOKIE_NAME),
        )
        request.state.session_handle = handle
    return handle


async def require_user_session(
    request: Request,
    handle: SessionHandle = Depends(get_session_handle),
) -> SessionPayload:
    """Return the authenticated payload or redirect to the login page."""

    payload = await handle.get_user()
    if payload is None:
        logger.debug("unauthenticated request redirected to login")
        raise HTTPException(
            status.HTTP_303_SEE_OTHER,
            headers={"Location": LOGIN_PATH},
        )
    request.state.user_session = payload
    return payload


def protected_router(**kwargs: Any) -> APIRouter:
    """Return an ``APIRouter`` whose routes all sit behind the access guard."""

    dependencies = [Depends(require_user_session), *kwargs.pop("dependencies", [])]
    return APIRouter(dependencies=dependencies, **kwargs)


__all__ = [
    "get_authenticator",
    "get_flash",
    "get_login_throttle",
    "get_session_handle",
    "protected_router",
    "require_user_session",
]
