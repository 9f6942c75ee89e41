from __future__ import annotations

import asyncio
from typing import Any

import pytest


class FakePlatform:
    """In-process stand-in for the extension's browser APIs."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.next_tab_id = 100
        self.create_tab_error: Exception | None = None
        self.remove_tab_error: Exception | None = None
        self.offscreen_error: Exception | None = None
        self.create_delay = 0.0
        self.offscreen_reply: Any = {"success": True, "dataUrl": "data:image/png;base64,AAAA"}
        self.offscreen_send_error: Exception | None = None
        self.download_error: Exception | None = None
        self.download_id = 42

    async def create_tab(self, url: str, *, active: bool = True) -> dict[str, Any]:
        self.calls.append(("create_tab", url))
        if self.create_tab_error is not None:
            raise self.create_tab_error
        tab_id = self.next_tab_id
        self.next_tab_id += 1
        return {"id": tab_id, "url": url, "active": active}

    async def remove_tab(self, tab_id: int) -> None:
        self.calls.append(("remove_tab", tab_id))
        if self.remove_tab_error is not None:
            raise self.remove_tab_error

    async def create_offscreen_document(self, url: str, *, reasons: list[str], justification: str) -> None:
        self.calls.append(("create_offscreen", url))
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.offscreen_error is not None:
            raise self.offscreen_error

    async def send_to_offscreen(self, message: dict[str, Any]) -> Any:
        self.calls.append(("send_to_offscreen", message.get("type")))
        if self.offscreen_send_error is not None:
            raise self.offscreen_send_error
        return self.offscreen_reply

    async def download(self, url: str, *, filename: str, save_as: bool = True) -> Any:
        self.calls.append(("download", (url, filename, save_as)))
        if self.download_error is not None:
            raise self.download_error
        return self.download_id

    async def inject_content_script(self, tab_id: int, *, css: list[str], js: list[str]) -> None:
        self.calls.append(("inject", (tab_id, tuple(css), tuple(js))))

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def ctx(platform: FakePlatform):
    from markdown_viewer.background.config import BridgeConfig
    from markdown_viewer.background.context import BridgeContext

    cfg = BridgeConfig(extension_url="chrome-extension://testext/")
    return BridgeContext.create(cfg, platform)
