from __future__ import annotations

from typing import Any

from ...context import BridgeContext
from ..messages import ScrollRequest
from ..types import Response, Sender, ok


async def handle_save_scroll(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = ScrollRequest.from_message(message)
    ctx.scroll.save(req.url, req.position)
    return ok()


async def handle_get_scroll(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    # A lookup without a usable url is just "no saved position".
    if not isinstance(message.get("url"), str):
        return {"position": 0}
    req = ScrollRequest.from_message(message)
    return {"position": ctx.scroll.get(req.url)}


async def handle_clear_scroll(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = ScrollRequest.from_message(message)
    ctx.scroll.clear(req.url)
    return ok()


SCROLL_HANDLERS = {
    "saveScrollPosition": handle_save_scroll,
    "getScrollPosition": handle_get_scroll,
    "clearScrollPosition": handle_clear_scroll,
}
