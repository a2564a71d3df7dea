"""Raw ASGI middleware tagging every request with an identifier."""
from __future__ import annotations

import logging
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "todo-request-id"
_HEADER_BYTES = REQUEST_ID_HEADER.encode("latin-1")


class RequestIdMiddleware:
    """Reuse or mint a request id, expose it on ``request.state`` and echo it back."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        incoming = next(
            (v for k, v in scope.get("headers") or [] if k.lower() == _HEADER_BYTES),
            b"",
        )
        request_id = incoming.decode("latin-1").strip() or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers") or [])
                headers.append((_HEADER_BYTES, request_id.encode("latin-1")))
                message["headers"] = headers
                logger.debug(
                    "%s %s -> %s [%s]",
                    scope.get("method"),
                    scope.get("path"),
                    message.get("status"),
                    request_id,
                )
            await send(message)

        await self.app(scope, receive, send_with_id)
