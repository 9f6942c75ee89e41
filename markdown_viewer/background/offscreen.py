"""Lifecycle of the single hidden offscreen rendering document.

`created` is a cached belief about external state, not a lock. It is corrected when
the offscreen connection drops or a forward fails because nothing is listening.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .errors import BridgeError, CommunicationFailure, ResourceCreationFailed
from .platform import ExtensionPlatform

logger = logging.getLogger("mdv.bridge.offscreen")

OFFSCREEN_PAGE = "offscreen.html"
OFFSCREEN_REASONS = ["DOM_SCRAPING"]
OFFSCREEN_JUSTIFICATION = "Render Mermaid diagrams, SVG and HTML to PNG"
RENDER_MESSAGE_TYPES = frozenset({"renderMermaid", "renderHtml", "renderSvg"})

_ALREADY_EXISTS_MARKERS = ("already exists", "only a single offscreen")


def is_already_exists_error(message: str) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in _ALREADY_EXISTS_MARKERS)


class OffscreenController:
    def __init__(self, platform: ExtensionPlatform, *, document_url: str) -> None:
        self._platform = platform
        self._document_url = document_url
        self.created = False
        self._creating: asyncio.Task[None] | None = None
        self.creation_attempts = 0

    async def ensure(self) -> None:
        if self.created:
            return
        # Join an in-flight creation instead of starting a second one.
        task = self._creating
        if task is None or task.done():
            task = asyncio.ensure_future(self._create())
            self._creating = task
        try:
            await asyncio.shield(task)
        finally:
            if self._creating is task and task.done():
                self._creating = None

    async def _create(self) -> None:
        self.creation_attempts += 1
        try:
            await self._platform.create_offscreen_document(
                self._document_url,
                reasons=list(OFFSCREEN_REASONS),
                justification=OFFSCREEN_JUSTIFICATION,
            )
        except Exception as exc:  # noqa: BLE001
            msg = str(exc)
            if is_already_exists_error(msg):
                logger.debug("offscreen_already_exists")
                self.created = True
                return
            raise ResourceCreationFailed(f"Failed to create offscreen document: {msg}") from exc
        self.created = True
        logger.info("offscreen_created url=%s", self._document_url)

    def mark_ready(self) -> None:
        self.created = True

    def mark_disconnected(self) -> None:
        if self.created:
            logger.info("offscreen_disconnected")
        self.created = False

    async def forward(self, message: dict[str, Any]) -> Any:
        try:
            await self.ensure()
        except BridgeError as exc:
            return {"error": f"Offscreen setup failed: {exc.message}"}
        except Exception as exc:  # noqa: BLE001
            logger.exception("offscreen_setup_failed")
            return {"error": f"Offscreen setup failed: {exc}"}

        try:
            response = await self._platform.send_to_offscreen(message)
        except Exception as exc:  # noqa: BLE001
            failure = exc if isinstance(exc, CommunicationFailure) else CommunicationFailure(str(exc))
            # Only a missing receiver invalidates the belief; other failures may be transient.
            if failure.terminal:
                self.created = False
            logger.info("offscreen_send_failed terminal=%s error=%s", failure.terminal, failure.message)
            return {"error": f"Offscreen communication failed: {failure.message}"}

        if not response:
            return {"error": "No response from offscreen document. Document may have failed to load."}
        return response


__all__ = [
    "OFFSCREEN_JUSTIFICATION",
    "OFFSCREEN_PAGE",
    "OFFSCREEN_REASONS",
    "OffscreenController",
    "RENDER_MESSAGE_TYPES",
    "is_already_exists_error",
]
