"""
Correlation ID middleware.

HTTP requests and WebSocket sessions get an id, taken from the incoming
header or generated, that the structured logger attaches to each entry
emitted while serving them. Responses and WebSocket handshakes echo it back.
Background tasks of a request run inside the request, so download tracking
logs under the same id.

Written as plain ASGI so WebSocket scopes pass through it too.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.config import config

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Messages that carry the headers sent back to the client
_HANDSHAKE_MESSAGES = ("http.response.start", "websocket.accept")


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID from the current context"""
    return correlation_id_ctx.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Set the correlation ID in the current context"""
    correlation_id_ctx.set(correlation_id)


def correlation_id_from(headers: Headers) -> str:
    return headers.get(config.correlation_id_header) or str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Tags HTTP requests and WebSocket sessions with a correlation id"""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        correlation_id = correlation_id_from(Headers(scope=scope))
        scope.setdefault("state", {})["correlation_id"] = correlation_id

        async def send_with_correlation_id(message: Message) -> None:
            if message["type"] in _HANDSHAKE_MESSAGES:
                message.setdefault("headers", [])
                MutableHeaders(scope=message)[config.correlation_id_header] = correlation_id
            await send(message)

        token = correlation_id_ctx.set(correlation_id)
        try:
            await self.app(scope, receive, send_with_correlation_id)
        finally:
            correlation_id_ctx.reset(token)
