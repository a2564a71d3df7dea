"""Login, registration, account and logout endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, Request, Response, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel, SecretStr

from ..errors import INCORRECT_CREDENTIALS, LOGIN_PATH, InvalidCredentials
from ..templating import templates
from .dependencies import (
    get_authenticator,
    get_flash,
    get_login_throttle,
    get_session_handle,
    require_user_session,
)
from .flash import FlashLevel, FlashNotifier
from .service import Authenticator, Credential
from .session import SessionHandle, SessionPayload, apply_session_cookie
from .throttling import LoginThrottle

router = APIRouter(prefix="/users")
logger = logging.getLogger(__name__)

LANDING_PATH = "/todo"
HOME_PATH = "/"
THROTTLED_MESSAGE = "Too many login attempts. Try again shortly."
REGISTERED_MESSAGE = "Account created. Please sign in."


class AccountUpdate(BaseModel):
    username: str
    prev_password: SecretStr
    new_password: SecretStr


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/login", response_class=HTMLResponse)
async def login_page(
    request: Request,
    handle: SessionHandle = Depends(get_session_handle),
    flash: FlashNotifier = Depends(get_flash),
):
    if await handle.get_user() is not None:
        return _see_other(LANDING_PATH)

    messages = flash.read(request.cookies)
    response = templates.TemplateResponse(
        request,
        "login.html",
        {
            "title": "Sign in",
            "errors": [m.text for m in messages if m.level is FlashLevel.ERROR],
            "notices": [m.text for m in messages if m.level is FlashLevel.SUCCESS],
        },
    )
    flash.clear(request.cookies, response)
    return response


@router.post("/login")
async def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    handle: SessionHandle = Depends(get_session_handle),
    authenticator: Authenticator = Depends(get_authenticator),
    flash: FlashNotifier = Depends(get_flash),
    throttle: LoginThrottle = Depends(get_login_throttle),
):
    client_key = _client_key(request)
    if throttle.check(client_key).blocked:
        logger.info("login throttled for %s", client_key)
        response = _see_other(LOGIN_PATH)
        flash.error(response, THROTTLED_MESSAGE)
        return response

    try:
        payload = await authenticator.authenticate(
            Credential(email=email, password=SecretStr(password))
        )
    except InvalidCredentials as exc:
        state = throttle.record_failure(client_key)
        response = _see_other(LOGIN_PATH)
        flash.error(response, THROTTLED_MESSAGE if state.blocked else str(exc))
        return response

    throttle.reset(client_key)
    await handle.cycle()
    await handle.insert_user(payload)
    logger.info("user %s signed in", payload.user_id)
    response = _see_other(LANDING_PATH)
    apply_session_cookie(response, handle)
    return response


@router.get("/register", response_class=HTMLResponse)
async def register_page(request: Request):
    return templates.TemplateResponse(request, "register.html", {"title": "Register"})


@router.post("/register")
async def register_submit(
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    authenticator: Authenticator = Depends(get_authenticator),
    flash: FlashNotifier = Depends(get_flash),
):
    await authenticator.register(username, email, SecretStr(password))
    response = _see_other(LOGIN_PATH)
    flash.success(response, REGISTERED_MESSAGE)
    return response


@router.put("/account", status_code=status.HTTP_204_NO_CONTENT)
async def update_account(
    update: AccountUpdate,
    user: SessionPayload = Depends(require_user_session),
    handle: SessionHandle = Depends(get_session_handle),
    authenticator: Authenticator = Depends(get_authenticator),
):
    try:
        payload = await authenticator.update_account(
            user.user_id,
            username=update.username,
            prev_password=update.prev_password,
            new_password=update.new_password,
        )
    except InvalidCredentials:
        return JSONResponse(
            {"detail": INCORRECT_CREDENTIALS}, status_code=status.HTTP_403_FORBIDDEN
        )

    await handle.cycle()
    await handle.insert_user(payload)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    apply_session_cookie(response, handle)
    return response


@router.get("/logout")
async def logout(handle: SessionHandle = Depends(get_session_handle)):
    user = await handle.get_user()
    await handle.flush()
    if user is not None:
        logger.info("user %s signed out", user.user_id)
    response = _see_other(HOME_PATH)
    apply_session_cookie(response, handle)
    return response


__all__ = ["router"]
