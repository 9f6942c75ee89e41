from __future__ import annotations

import asyncio
from typing import Any

from ...context import BridgeContext
from ...file_reader import read_local_file
from ..messages import ReadLocalFile
from ..types import Response, Sender


async def handle_read_local_file(ctx: BridgeContext, message: dict[str, Any], sender: Sender) -> Response:
    """Read a local or remote file for the viewer (text, or base64 when `binary`)."""
    req = ReadLocalFile.from_message(message)
    # Blocking I/O stays off the event loop.
    return await asyncio.to_thread(read_local_file, req.file_path, ctx.config, binary=req.binary)


FILE_HANDLERS = {
    "READ_LOCAL_FILE": handle_read_local_file,
}
