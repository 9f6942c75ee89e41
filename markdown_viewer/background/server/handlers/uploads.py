"""Chunked upload handlers: init, chunk, finalize, abort."""

from __future__ import annotations

from typing import Any

from ...context import BridgeContext
from ..messages import TokenRequest, UploadChunk, UploadInit
from ..types import Response, Sender, ok


async def handle_upload_init(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = UploadInit.from_message(message)
    token, chunk_size = ctx.sessions.open(
        req.purpose,
        chunk_size=req.chunk_size,
        encoding=req.encoding,
        metadata=req.metadata,
        expected_size=req.expected_size,
    )
    return ok(token=token, chunkSize=chunk_size)


async def handle_upload_chunk(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = UploadChunk.from_message(message)
    ctx.sessions.append_chunk(req.token, req.chunk)
    return ok()


async def handle_upload_finalize(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = TokenRequest.from_message(message, error="Missing upload session token")
    session = ctx.sessions.finalize(req.token)
    return ok(token=req.token, purpose=session.purpose, bytes=session.received_bytes, encoding=session.encoding)


async def handle_upload_abort(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    ctx.sessions.abort(message.get("token"))
    return None


UPLOAD_HANDLERS = {
    "UPLOAD_INIT": handle_upload_init,
    "UPLOAD_CHUNK": handle_upload_chunk,
    "UPLOAD_FINALIZE": handle_upload_finalize,
    "UPLOAD_ABORT": handle_upload_abort,
}
