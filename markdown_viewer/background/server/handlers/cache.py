"""Render cache handlers.

Content scripts use `cacheOperation`; the popup uses `action: getCacheStats|clearCache`
and always expects a stats-shaped reply, even on failure.
"""

from __future__ import annotations

import logging
from typing import Any

from ...cache import empty_stats
from ...context import BridgeContext
from ...errors import ExternalCollaboratorFailure
from ..messages import CacheOperation
from ..types import Response, Sender, error, ok

logger = logging.getLogger("mdv.bridge.cache")

CACHE_INIT_FAILED = "Cache system initialization failed"


async def handle_cache_operation(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    cache = ctx.ensure_cache()
    if cache is None:
        return error(CACHE_INIT_FAILED)

    req = CacheOperation.from_message(message)
    try:
        if req.operation == "get":
            return {"result": await cache.get(req.key or "")}
        if req.operation == "set":
            await cache.set(req.key or "", req.value, req.data_type)
            return ok()
        if req.operation == "clear":
            await cache.clear()
            return ok()
        if req.operation == "getStats":
            return {"result": await cache.get_stats()}
    except Exception as exc:  # noqa: BLE001
        raise ExternalCollaboratorFailure(str(exc)) from exc
    return error("Unknown cache operation")


async def handle_cache_stats(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    cache = ctx.ensure_cache()
    if cache is None:
        return {**empty_stats(ctx.config.cache_max_items), "message": CACHE_INIT_FAILED}
    try:
        return await cache.get_stats()
    except Exception as exc:  # noqa: BLE001
        logger.warning("cache_stats_failed error=%s", exc)
        return {**empty_stats(ctx.config.cache_max_items), "error": str(exc), "message": "Cache operation failed"}


async def handle_cache_clear(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    cache = ctx.ensure_cache()
    if cache is None:
        return {**empty_stats(ctx.config.cache_max_items), "message": CACHE_INIT_FAILED}
    try:
        await cache.clear()
    except Exception as exc:  # noqa: BLE001
        logger.warning("cache_clear_failed error=%s", exc)
        return {**empty_stats(ctx.config.cache_max_items), "error": str(exc), "message": "Cache operation failed"}
    return ok(message="Cache cleared successfully")


CACHE_HANDLERS = {
    "cacheOperation": handle_cache_operation,
    "getCacheStats": handle_cache_stats,
    "clearCache": handle_cache_clear,
}
