from __future__ import annotations

from typing import Any

from ...context import BridgeContext
from ...errors import InvalidInput
from ..types import Response, Sender, ok

CONTENT_CSS = ["styles.css"]
CONTENT_JS = ["content.js"]


async def handle_inject_content_script(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    """Inject the viewer stylesheet, then the content script, into the sender's tab."""
    if sender.tab_id is None:
        raise InvalidInput("Sender tab is unknown")
    await ctx.platform.inject_content_script(sender.tab_id, css=list(CONTENT_CSS), js=list(CONTENT_JS))
    return ok()


LIFECYCLE_HANDLERS = {
    "injectContentScript": handle_inject_content_script,
}
