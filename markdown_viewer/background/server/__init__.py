"""Message handling for the background bridge.

Keep this package import light: the gateway imports the router lazily.
"""

from __future__ import annotations

from typing import Any

__all__ = ["MessageRouter", "create_default_router"]


def __getattr__(name: str) -> Any:  # pragma: no cover
    if name in {"MessageRouter", "create_default_router"}:
        from .dispatch import MessageRouter, create_default_router

        return {"MessageRouter": MessageRouter, "create_default_router": create_default_router}[name]
    raise AttributeError(name)
