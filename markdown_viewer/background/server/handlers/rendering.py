"""Rendering requests forwarded to the offscreen document, plus its status pings."""

from __future__ import annotations

import logging
from typing import Any

from ...context import BridgeContext
from ...offscreen import RENDER_MESSAGE_TYPES
from ..types import Response, Sender

logger = logging.getLogger("mdv.bridge.rendering")


async def handle_render(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Any:
    return await ctx.offscreen.forward(message)


async def handle_offscreen_ready(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    ctx.offscreen.mark_ready()
    return None


async def handle_offscreen_dom_ready(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    return None


async def handle_offscreen_error(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    logger.error("offscreen_error error=%s", message.get("error"))
    return None


RENDERING_HANDLERS = {
    **{kind: handle_render for kind in sorted(RENDER_MESSAGE_TYPES)},
    "offscreenReady": handle_offscreen_ready,
    "offscreenDOMReady": handle_offscreen_dom_ready,
    "offscreenError": handle_offscreen_error,
}
