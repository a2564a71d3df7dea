from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from .auth.dependencies import get_session_handle, protected_router, require_user_session
from .auth.session import SessionHandle, SessionPayload
from .templating import templates

router = APIRouter()
todo_router = protected_router(prefix="/todo")


@router.get("/", response_class=HTMLResponse)
async def home_page(request: Request, handle: SessionHandle = Depends(get_session_handle)):
    user = await handle.get_user()
    return templates.TemplateResponse(
        request,
        "home.html",
        {"title": "Todo", "username": user.username if user else None},
    )


@todo_router.get("", response_class=HTMLResponse)
async def todo_page(request: Request, user: SessionPayload = Depends(require_user_session)):
    return templates.TemplateResponse(
        request,
        "todo.html",
        {"title": "Your tasks", "username": user.username},
    )
