"""Browser-side effects the coordinator needs, as seen from Python.

The gateway implements this by sending `rpc` frames to the connected extension
(`platform` role) and to the offscreen renderer (`offscreen` role). Tests use fakes.
"""

from __future__ import annotations

from typing import Any, Protocol


class ExtensionPlatform(Protocol):
    async def create_tab(self, url: str, *, active: bool = True) -> dict[str, Any]: ...

    async def remove_tab(self, tab_id: int) -> None: ...

    async def create_offscreen_document(self, url: str, *, reasons: list[str], justification: str) -> None: ...

    async def send_to_offscreen(self, message: dict[str, Any]) -> Any: ...

    async def download(self, url: str, *, filename: str, save_as: bool = True) -> Any: ...

    async def inject_content_script(self, tab_id: int, *, css: list[str], js: list[str]) -> None: ...


__all__ = ["ExtensionPlatform"]
