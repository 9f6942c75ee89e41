"""Token-keyed upload sessions and the chunked transfer state machine.

A session accumulates string chunks in arrival order until it is finalized, at which
point the chunks are joined into `data` and the session becomes immutable. Arrival
order is message order on the channel; retransmitted or reordered chunks are not
detected.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from .errors import InvalidChunk, InvalidInput, SessionNotFound

logger = logging.getLogger("mdv.bridge.sessions")

DEFAULT_UPLOAD_CHUNK_SIZE = 255 * 1024
ENCODINGS = ("text", "base64")


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_token() -> str:
    """Return an opaque token from the OS CSPRNG, or a PRNG if none is available."""
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        words = [random.getrandbits(32) for _ in range(4)]
        return "-".join(f"{w:08x}" for w in words)


def chunk_bytes(chunk: str, encoding: str) -> int:
    # base64: approximate decoded size, padding is not subtracted.
    if encoding == "base64":
        return len(chunk) * 3 // 4
    return len(chunk)


@dataclass
class UploadSession:
    token: str
    purpose: str = "general"
    encoding: str = "text"
    metadata: dict[str, Any] = field(default_factory=dict)
    expected_size: float | None = None
    chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE
    chunks: list[str] | None = field(default_factory=list)
    received_bytes: int = 0
    created_at: int = field(default_factory=_now_ms)
    last_chunk_time: int | None = None
    completed: bool = False
    completed_at: int | None = None
    data: str | None = None

    @property
    def last_activity(self) -> int:
        return self.last_chunk_time or self.created_at


class SessionRegistry:
    """Owns every live upload session for one bridge lifetime."""

    def __init__(
        self,
        *,
        default_chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE,
        is_reserved: Callable[[str], bool] | None = None,
    ) -> None:
        if default_chunk_size <= 0:
            raise InvalidInput("default chunk size must be positive")
        self._sessions: dict[str, UploadSession] = {}
        self._default_chunk_size = int(default_chunk_size)
        # Tokens that are live elsewhere (e.g. promoted print jobs) must not be reissued.
        self._is_reserved = is_reserved

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and token in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[UploadSession]:
        return iter(list(self._sessions.values()))

    def _fresh_token(self) -> str:
        while True:
            token = create_token()
            if token in self._sessions:
                continue
            if self._is_reserved is not None and self._is_reserved(token):
                continue
            return token

    def open(
        self,
        purpose: str = "general",
        *,
        chunk_size: Any = None,
        encoding: str = "text",
        metadata: Any = None,
        expected_size: Any = None,
    ) -> tuple[str, int]:
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size <= 0:
            chunk_size = self._default_chunk_size
        if not isinstance(purpose, str) or not purpose.strip():
            purpose = "general"
        if isinstance(expected_size, bool) or not isinstance(expected_size, (int, float)):
            expected_size = None

        token = self._fresh_token()
        self._sessions[token] = UploadSession(
            token=token,
            purpose=purpose.strip(),
            encoding=encoding if encoding in ENCODINGS else "text",
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
            expected_size=expected_size,
            chunk_size=int(chunk_size),
        )
        logger.debug("upload_open token=%s purpose=%s chunk_size=%s", token, purpose, chunk_size)
        return token, int(chunk_size)

    def get(self, token: str) -> UploadSession | None:
        return self._sessions.get(token)

    def pop(self, token: str) -> UploadSession | None:
        return self._sessions.pop(token, None)

    def append_chunk(self, token: str, chunk: Any) -> UploadSession:
        session = self._sessions.get(token)
        if session is None or session.completed:
            raise SessionNotFound()
        if not isinstance(chunk, str):
            raise InvalidChunk()
        if session.chunks is None:
            session.chunks = []
        session.chunks.append(chunk)
        session.received_bytes += chunk_bytes(chunk, session.encoding)
        session.last_chunk_time = _now_ms()
        return session

    def finalize(self, token: str) -> UploadSession:
        session = self._sessions.get(token)
        if session is None or session.completed:
            raise SessionNotFound()
        session.data = "".join(session.chunks or [])
        session.chunks = None
        session.completed = True
        session.completed_at = _now_ms()
        logger.debug("upload_finalized token=%s bytes=%s", token, session.received_bytes)
        return session

    def finalize_if_needed(self, token: str) -> UploadSession:
        session = self._sessions.get(token)
        if session is None:
            raise SessionNotFound()
        if session.completed:
            return session
        return self.finalize(token)

    def abort(self, token: Any) -> None:
        if isinstance(token, str) and token:
            self._sessions.pop(token, None)

    def reap_idle(self, ttl: float, *, now_ms: int | None = None) -> list[str]:
        """Drop sessions with no activity for `ttl` seconds; return their tokens."""
        now = _now_ms() if now_ms is None else int(now_ms)
        cutoff = now - int(ttl * 1000)
        stale = [tok for tok, s in self._sessions.items() if s.last_activity <= cutoff]
        for tok in stale:
            self._sessions.pop(tok, None)
        return stale


__all__ = [
    "DEFAULT_UPLOAD_CHUNK_SIZE",
    "ENCODINGS",
    "SessionRegistry",
    "UploadSession",
    "chunk_bytes",
    "create_token",
]
