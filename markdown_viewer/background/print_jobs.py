"""Print job pipeline.

A finalized upload session is promoted (moved, never copied) into a print job, a print
tab is opened carrying the token, and the print page pulls the HTML back in bounded
chunks. End of stream is an empty chunk whose `nextOffset` equals the payload length.
"""

from __future__ import annotations

import logging
import time
import urllib.parse
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import BridgeError, CommunicationFailure, InvalidInput, JobNotFound, JobNotReady
from .platform import ExtensionPlatform
from .sessions import SessionRegistry

logger = logging.getLogger("mdv.bridge.print_jobs")

PRINT_CHUNK_SIZE = 256 * 1024
DEFAULT_TITLE = "Document"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return _is_int(value) or (isinstance(value, float) and value == value and value != float("inf"))


@dataclass
class PrintJob:
    token: str
    html: str | None
    title: str = DEFAULT_TITLE
    filename: str = ""
    chunk_size: int = PRINT_CHUNK_SIZE
    created_at: int = field(default_factory=_now_ms)
    source_tab_id: int | None = None
    tab_id: int | None = None

    def describe(self) -> dict[str, Any]:
        if not isinstance(self.html, str):
            raise JobNotReady()
        return {
            "title": self.title,
            "filename": self.filename,
            "length": len(self.html),
            "chunkSize": self.chunk_size if _is_int(self.chunk_size) else PRINT_CHUNK_SIZE,
        }


def _pick_title(override: Any, metadata: dict[str, Any]) -> str:
    if isinstance(override, str) and override.strip():
        return override.strip()
    meta_title = metadata.get("title")
    if isinstance(meta_title, str) and meta_title.strip():
        return meta_title.strip()
    return DEFAULT_TITLE


def _pick_filename(override: Any, metadata: dict[str, Any]) -> str:
    if isinstance(override, str):
        return override
    meta_filename = metadata.get("filename")
    return meta_filename if isinstance(meta_filename, str) else ""


class PrintJobPipeline:
    def __init__(
        self,
        sessions: SessionRegistry,
        platform: ExtensionPlatform,
        *,
        page_url: Callable[[str], str],
    ) -> None:
        self._sessions = sessions
        self._platform = platform
        self._page_url = page_url
        self._jobs: dict[str, PrintJob] = {}

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and token in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def get(self, token: str) -> PrintJob | None:
        return self._jobs.get(token)

    def print_url(self, token: str) -> str:
        return self._page_url(f"print.html?token={urllib.parse.quote(token, safe='')}")

    def promote(
        self,
        token: Any,
        *,
        title: Any = None,
        filename: Any = None,
        source_tab_id: int | None = None,
    ) -> PrintJob:
        """Finalize the session if needed and move it into the job map (no suspension)."""
        if not isinstance(token, str) or not token:
            raise InvalidInput("Missing print job token")
        session = self._sessions.finalize_if_needed(token)

        metadata = session.metadata if isinstance(session.metadata, dict) else {}
        html = session.data if isinstance(session.data, str) else "".join(session.chunks or [])
        chunk_size = session.chunk_size if _is_int(session.chunk_size) and session.chunk_size > 0 else PRINT_CHUNK_SIZE

        job = PrintJob(
            token=token,
            html=html,
            title=_pick_title(title, metadata),
            filename=_pick_filename(filename, metadata),
            chunk_size=chunk_size,
            source_tab_id=source_tab_id if _is_int(source_tab_id) else None,
        )
        self._jobs[token] = job
        self._sessions.pop(token)
        return job

    async def start(
        self,
        token: Any,
        *,
        title: Any = None,
        filename: Any = None,
        source_tab_id: int | None = None,
    ) -> PrintJob:
        job = self.promote(token, title=title, filename=filename, source_tab_id=source_tab_id)
        try:
            tab = await self._platform.create_tab(self.print_url(job.token), active=True)
        except Exception as exc:
            self._jobs.pop(job.token, None)
            logger.warning("print_tab_create_failed token=%s error=%s", job.token, exc)
            if isinstance(exc, BridgeError) and exc.message:
                raise
            raise CommunicationFailure(str(exc) or "Failed to create print tab") from exc

        tab_id = tab.get("id") if isinstance(tab, dict) else None
        if _is_int(tab_id):
            job.tab_id = tab_id
        logger.info("print_job_started token=%s tab=%s bytes=%s", job.token, job.tab_id, len(job.html or ""))
        return job

    def request(self, token: Any, *, sender_tab_id: int | None = None) -> dict[str, Any]:
        job = self._jobs.get(token) if isinstance(token, str) and token else None
        if job is None:
            raise JobNotFound()
        if job.tab_id is None and _is_int(sender_tab_id):
            job.tab_id = sender_tab_id
        return job.describe()

    def fetch_chunk(self, token: Any, offset: Any = None, length: Any = None) -> dict[str, Any]:
        offset = int(offset) if _is_number(offset) and offset >= 0 else 0
        length = max(1, int(length)) if _is_number(length) and length > 0 else PRINT_CHUNK_SIZE

        job = self._jobs.get(token) if isinstance(token, str) and token else None
        if job is None:
            raise JobNotFound()
        if not isinstance(job.html, str):
            raise JobNotReady("Print data unavailable")

        total = len(job.html)
        if offset >= total:
            return {"chunk": "", "nextOffset": total}
        chunk = job.html[offset : offset + length]
        return {"chunk": chunk, "nextOffset": offset + len(chunk)}

    def discard(self, token: str) -> PrintJob | None:
        return self._jobs.pop(token, None)

    async def complete(self, token: Any, *, close_tab: Any = True) -> None:
        if not isinstance(token, str) or not token:
            raise InvalidInput("Missing print job token")
        job = self.discard(token)
        if job is None:
            return
        logger.info("print_job_completed token=%s tab=%s", token, job.tab_id)
        if close_tab is False or not _is_int(job.tab_id):
            return
        try:
            await self._platform.remove_tab(job.tab_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("print_tab_close_failed token=%s tab=%s error=%s", token, job.tab_id, exc)

    def discard_for_tab(self, tab_id: Any) -> str | None:
        for token, job in self._jobs.items():
            if job.tab_id == tab_id:
                del self._jobs[token]
                return token
        return None

    def reap_expired(self, ttl: float, *, now_ms: int | None = None) -> list[str]:
        now = _now_ms() if now_ms is None else int(now_ms)
        cutoff = now - int(ttl * 1000)
        stale = [tok for tok, job in self._jobs.items() if job.created_at <= cutoff]
        for tok in stale:
            self._jobs.pop(tok, None)
        return stale


__all__ = ["DEFAULT_TITLE", "PRINT_CHUNK_SIZE", "PrintJob", "PrintJobPipeline"]
