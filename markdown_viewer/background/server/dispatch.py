"""
Message router with a dispatch table keyed by request kind.

Every failure is answered with `{"error": str}`: the channel has no exception
propagation across contexts, so nothing may escape `dispatch`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..errors import BridgeError
from .types import HandlerFunc, Response, Sender, error

if TYPE_CHECKING:
    from ..context import BridgeContext

logger = logging.getLogger("mdv.bridge.dispatch")


def message_kind(message: Any) -> str | None:
    """`type` names most requests; popup cache requests use `action` instead."""
    if not isinstance(message, dict):
        return None
    kind = message.get("type")
    if isinstance(kind, str) and kind:
        return kind
    action = message.get("action")
    if isinstance(action, str) and action:
        return action
    return None


class MessageRouter:
    def __init__(self) -> None:
        self._handlers: dict[str, HandlerFunc] = {}

    def register(self, kind: str, handler: HandlerFunc) -> None:
        self._handlers[kind] = handler

    def register_many(self, handlers: dict[str, HandlerFunc]) -> None:
        self._handlers.update(handlers)

    def has(self, kind: str) -> bool:
        return kind in self._handlers

    @property
    def kinds(self) -> list[str]:
        return list(self._handlers.keys())

    def __len__(self) -> int:
        return len(self._handlers)

    async def dispatch(self, ctx: BridgeContext, message: Any, sender: Sender | None = None) -> Response:
        kind = message_kind(message)
        if kind is None:
            return None
        handler = self._handlers.get(kind)
        if handler is None:
            # Unknown kinds fall through unanswered, like an unhandled runtime message.
            logger.debug("unhandled_message kind=%s", kind)
            return None

        try:
            return await handler(ctx, message, sender or Sender())
        except BridgeError as exc:
            logger.info("message_error kind=%s code=%s reason=%s", kind, exc.code, exc.message)
            return error(exc.message)
        except Exception as exc:
            logger.exception("message_handler_failed kind=%s", kind)
            return error(str(exc) or type(exc).__name__)


def create_default_router() -> MessageRouter:
    from .handlers import ALL_HANDLERS

    router = MessageRouter()
    router.register_many(ALL_HANDLERS)
    return router


__all__ = ["MessageRouter", "create_default_router", "message_kind"]
