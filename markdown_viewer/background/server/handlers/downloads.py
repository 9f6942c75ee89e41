"""DOCX export: the document arrives base64-encoded through an upload session."""

from __future__ import annotations

import logging
from typing import Any

from ...context import BridgeContext
from ...errors import ExternalCollaboratorFailure, SessionNotFound
from ..messages import TokenRequest
from ..types import Response, Sender, ok

logger = logging.getLogger("mdv.bridge.downloads")

DOCX_FILENAME = "document.docx"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


async def handle_docx_download_finalize(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    req = TokenRequest.from_message(message, error="Missing download job token")
    if req.token not in ctx.sessions:
        raise SessionNotFound("Download job not found")

    session = ctx.sessions.finalize_if_needed(req.token)
    ctx.sessions.pop(req.token)

    metadata = session.metadata if isinstance(session.metadata, dict) else {}
    filename = metadata.get("filename") or DOCX_FILENAME
    mime_type = metadata.get("mimeType") or DOCX_MIME_TYPE
    data_url = f"data:{mime_type};base64,{session.data or ''}"

    try:
        download_id = await ctx.platform.download(data_url, filename=str(filename), save_as=True)
    except Exception as exc:  # noqa: BLE001
        raise ExternalCollaboratorFailure(str(exc) or "Download failed") from exc
    logger.info("docx_download_started token=%s download=%s", req.token, download_id)
    return ok(downloadId=download_id)


DOWNLOAD_HANDLERS = {
    "DOCX_DOWNLOAD_FINALIZE": handle_docx_download_finalize,
}
