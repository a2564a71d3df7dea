import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool

from . import database
from .auth.flash import FlashNotifier, FlashSigner
from .auth.passwords import PasswordHasher
from .auth.routes import router as users_router
from .auth.service import Authenticator
from .auth.store import SessionStore, build_session_store
from .auth.throttling import LoginThrottle
from .auth.users import SQLUserStore, UserStore
from .config import settings
from .errors import InternalError, install_error_handlers
from .middleware import RequestIdMiddleware
from .routes_pages import router as pages_router
from .routes_pages import todo_router

logger = logging.getLogger(__name__)


async def run_housekeeping(session_store: SessionStore, login_throttle: LoginThrottle) -> int:
    """Drop expired sessions and stale throttle records once."""

    removed = await run_in_threadpool(session_store.purge_expired)
    pruned = login_throttle.prune()
    if removed or pruned:
        logger.info("housekeeping removed %d sessions and %d throttle records", removed, pruned)
    return removed


async def _housekeeping_loop(
    session_store: SessionStore, login_throttle: LoginThrottle, interval: float
) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await run_housekeeping(session_store, login_throttle)
        except InternalError:
            logger.error("housekeeping pass failed", exc_info=True)


def create_app(
    *,
    user_store: Optional[UserStore] = None,
    session_store: Optional[SessionStore] = None,
    hasher: Optional[PasswordHasher] = None,
    login_throttle: Optional[LoginThrottle] = None,
) -> FastAPI:
    """Build the application; collaborators not passed in come from ``settings``."""

    engine = None
    if user_store is None or (session_store is None and settings.SESSION_BACKEND == "database"):
        engine = database.build_engine(settings.DATABASE_URL)

    user_store = user_store or SQLUserStore(engine)
    session_store = session_store or build_session_store(
        settings.SESSION_BACKEND,
        ttl_seconds=settings.SESSION_TTL_SECONDS,
        sliding=settings.SESSION_SLIDING_EXPIRY,
        engine=engine,
    )
    hasher = hasher or PasswordHasher(max_workers=settings.HASHER_MAX_WORKERS)
    login_throttle = login_throttle or LoginThrottle(
        max_attempts=settings.LOGIN_ATTEMPT_LIMIT,
        window_seconds=settings.LOGIN_ATTEMPT_WINDOW,
        block_seconds=settings.LOGIN_BACKOFF_SECONDS,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if engine is not None:
            database.init_storage(engine)
        sweeper = asyncio.create_task(
            _housekeeping_loop(
                session_store, login_throttle, settings.HOUSEKEEPING_INTERVAL_SECONDS
            )
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
            hasher.shutdown()
            if engine is not None:
                engine.dispose()

    app = FastAPI(title="Todo", version="0.1", lifespan=lifespan)
    app.state.session_store = session_store
    app.state.authenticator = Authenticator(user_store, hasher)
    app.state.flash = FlashNotifier(FlashSigner(settings.FLASH_HMAC_KEY))
    app.state.login_throttle = login_throttle

    app.add_middleware(RequestIdMiddleware)
    install_error_handlers(app)

    app.include_router(pages_router)
    app.include_router(users_router)
    app.include_router(todo_router)
    return app


__all__ = ["create_app", "run_housekeeping"]
