from __future__ import annotations

from typing import Any


class ScrollPositionStore:
    """Per-URL scroll offsets for the current process lifetime. Last write wins."""

    def __init__(self) -> None:
        self._positions: dict[str, Any] = {}

    def save(self, url: str, position: Any) -> None:
        self._positions[url] = position

    def get(self, url: str) -> Any:
        return self._positions.get(url) or 0

    def clear(self, url: str) -> None:
        self._positions.pop(url, None)

    def __len__(self) -> int:
        return len(self._positions)
