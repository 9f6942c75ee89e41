"""Print job handlers.

Flow: the content script uploads the HTML through an upload session and sends
PRINT_JOB_START; the print tab then sends PRINT_JOB_REQUEST, pulls chunks with
PRINT_JOB_FETCH_CHUNK until an empty chunk arrives, and ends with PRINT_JOB_COMPLETE.
"""

from __future__ import annotations

from typing import Any

from ...context import BridgeContext
from ..messages import PrintJobComplete, PrintJobFetchChunk, PrintJobStart, TokenRequest
from ..types import Response, Sender, ok


async def handle_print_job_start(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = PrintJobStart.from_message(message)
    job = await ctx.print_jobs.start(
        req.token,
        title=req.title,
        filename=req.filename,
        source_tab_id=sender.tab_id,
    )
    return ok(token=job.token)


async def handle_print_job_request(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = TokenRequest.from_message(message, error="Print job not found")
    return ok(payload=ctx.print_jobs.request(req.token, sender_tab_id=sender.tab_id))


async def handle_print_job_fetch_chunk(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = PrintJobFetchChunk.from_message(message)
    return ok(**ctx.print_jobs.fetch_chunk(req.token, req.offset, req.length))


async def handle_print_job_complete(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = PrintJobComplete.from_message(message)
    await ctx.print_jobs.complete(req.token, close_tab=req.close_tab)
    return ok()


PRINT_JOB_HANDLERS = {
    "PRINT_JOB_START": handle_print_job_start,
    "PRINT_JOB_REQUEST": handle_print_job_request,
    "PRINT_JOB_FETCH_CHUNK": handle_print_job_fetch_chunk,
    "PRINT_JOB_COMPLETE": handle_print_job_complete,
}
