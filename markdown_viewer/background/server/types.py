"""
Type definitions for message handlers and their responses.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..context import BridgeContext

# `None` means "no response payload" (fire-and-forget requests).
Response = dict[str, Any] | None


@dataclass(slots=True, frozen=True)
class Sender:
    """Who sent a message: the connection role plus the browser tab, when known."""

    role: str = "content"
    tab_id: int | None = None
    connection_id: str | None = None

    @classmethod
    def from_hello(cls, hello: dict[str, Any], connection_id: str | None = None) -> Sender:
        role = str(hello.get("role") or "content").strip().lower() or "content"
        tab_id = hello.get("tabId")
        if isinstance(tab_id, bool) or not isinstance(tab_id, int):
            tab_id = None
        return cls(role=role, tab_id=tab_id, connection_id=connection_id)


def ok(**fields: Any) -> dict[str, Any]:
    return {"success": True, **fields}


def error(message: str) -> dict[str, Any]:
    return {"error": str(message)}


HandlerFunc = Callable[["BridgeContext", dict[str, Any], Sender], Awaitable[Response]]


__all__ = ["HandlerFunc", "Response", "Sender", "error", "ok"]
