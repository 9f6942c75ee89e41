from __future__ import annotations

import asyncio
import logging

from .context import BridgeContext

logger = logging.getLogger("mdv.bridge.reaper")


def reap_once(ctx: BridgeContext, *, now_ms: int | None = None) -> dict[str, list[str]]:
    sessions = ctx.sessions.reap_idle(ctx.config.session_ttl, now_ms=now_ms)
    jobs = ctx.print_jobs.reap_expired(ctx.config.job_ttl, now_ms=now_ms)
    for token in sessions:
        logger.info("upload_session_expired token=%s", token)
    for token in jobs:
        logger.info("print_job_expired token=%s", token)
    return {"sessions": sessions, "jobs": jobs}


async def run_reaper(ctx: BridgeContext) -> None:
    """Periodically drop idle sessions and stale print jobs until cancelled."""
    interval = float(ctx.config.reap_interval)
    if interval <= 0:
        return
    while True:
        await asyncio.sleep(interval)
        try:
            reap_once(ctx)
        except Exception:
            logger.exception("reaper_pass_failed")


__all__ = ["reap_once", "run_reaper"]
