"""Content-addressed render cache.

The coordinator only talks to the cache through `get` / `set` / `clear` / `get_stats`;
this in-memory LRU is the default backend for a single bridge lifetime.
"""

from __future__ import annotations

import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Protocol

DEFAULT_MAX_ITEMS = 1000


class CacheStore(Protocol):
    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, data_type: str | None = None) -> None: ...

    async def clear(self) -> None: ...

    async def get_stats(self) -> dict[str, Any]: ...


def empty_stats(max_items: int = DEFAULT_MAX_ITEMS) -> dict[str, Any]:
    return {"itemCount": 0, "maxItems": max_items, "totalSize": 0, "totalSizeMB": "0.00", "items": []}


def _size_of(value: Any) -> int:
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    try:
        return len(json.dumps(value, ensure_ascii=False).encode("utf-8"))
    except (TypeError, ValueError):
        return 0


@dataclass
class _Entry:
    value: Any
    data_type: str | None
    size: int
    stored_at: int
    accessed_at: int


class MemoryCacheStore:
    def __init__(self, *, max_items: int = DEFAULT_MAX_ITEMS) -> None:
        self.max_items = max(1, int(max_items))
        self._items: OrderedDict[str, _Entry] = OrderedDict()

    async def get(self, key: str) -> Any:
        entry = self._items.get(key)
        if entry is None:
            return None
        entry.accessed_at = int(time.time() * 1000)
        self._items.move_to_end(key)
        return entry.value

    async def set(self, key: str, value: Any, data_type: str | None = None) -> None:
        now = int(time.time() * 1000)
        self._items[key] = _Entry(value=value, data_type=data_type, size=_size_of(value), stored_at=now, accessed_at=now)
        self._items.move_to_end(key)
        while len(self._items) > self.max_items:
            self._items.popitem(last=False)

    async def clear(self) -> None:
        self._items.clear()

    async def get_stats(self) -> dict[str, Any]:
        total = sum(e.size for e in self._items.values())
        stats = empty_stats(self.max_items)
        stats.update(
            {
                "itemCount": len(self._items),
                "totalSize": total,
                "totalSizeMB": f"{total / (1024 * 1024):.2f}",
                "items": [
                    {
                        "key": key,
                        "type": e.data_type,
                        "size": e.size,
                        "timestamp": e.stored_at,
                        "lastAccess": e.accessed_at,
                    }
                    for key, e in reversed(self._items.items())
                ],
            }
        )
        return stats


__all__ = ["CacheStore", "DEFAULT_MAX_ITEMS", "MemoryCacheStore", "empty_stats"]
