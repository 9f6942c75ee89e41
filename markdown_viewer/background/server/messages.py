"""Typed request shapes, validated at the handler boundary.

Each request kind parses its raw JSON dict with `from_message`. Shape errors raise
`InvalidInput`; lenient fields (purpose, encoding, offsets, ...) fall back to defaults
instead, since senders are untrusted but not adversarial about formatting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import InvalidInput


def _token(message: dict[str, Any]) -> str | None:
    token = message.get("token")
    return token if isinstance(token, str) and token else None


def _payload(message: dict[str, Any]) -> dict[str, Any]:
    payload = message.get("payload")
    return payload if isinstance(payload, dict) else {}


def _require_token(message: dict[str, Any], error: str) -> str:
    token = _token(message)
    if token is None:
        raise InvalidInput(error)
    return token


@dataclass(slots=True, frozen=True)
class UploadInit:
    purpose: str = "general"
    encoding: str = "text"
    metadata: dict[str, Any] = field(default_factory=dict)
    expected_size: float | None = None
    chunk_size: int | None = None

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> UploadInit:
        payload = _payload(message)
        purpose = payload.get("purpose")
        expected = payload.get("expectedSize")
        chunk_size = payload.get("chunkSize")
        if isinstance(chunk_size, float) and chunk_size.is_integer():
            chunk_size = int(chunk_size)
        return cls(
            purpose=purpose.strip() if isinstance(purpose, str) and purpose.strip() else "general",
            encoding="base64" if payload.get("encoding") == "base64" else "text",
            metadata=payload["metadata"] if isinstance(payload.get("metadata"), dict) else {},
            expected_size=expected if isinstance(expected, (int, float)) and not isinstance(expected, bool) else None,
            chunk_size=chunk_size if isinstance(chunk_size, int) and not isinstance(chunk_size, bool) and chunk_size > 0 else None,
        )


@dataclass(slots=True, frozen=True)
class UploadChunk:
    token: str
    chunk: str

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> UploadChunk:
        token = _token(message)
        chunk = message.get("chunk")
        if token is None or not isinstance(chunk, str):
            raise InvalidInput("Invalid upload chunk payload")
        return cls(token=token, chunk=chunk)


@dataclass(slots=True, frozen=True)
class TokenRequest:
    token: str

    @classmethod
    def from_message(cls, message: dict[str, Any], *, error: str) -> TokenRequest:
        return cls(token=_require_token(message, error))


@dataclass(slots=True, frozen=True)
class PrintJobStart:
    token: str
    title: Any = None
    filename: Any = None

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> PrintJobStart:
        token = _require_token(message, "Missing print job token")
        payload = _payload(message)
        return cls(token=token, title=payload.get("title"), filename=payload.get("filename"))


@dataclass(slots=True, frozen=True)
class PrintJobFetchChunk:
    token: str | None
    offset: Any = None
    length: Any = None

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> PrintJobFetchChunk:
        return cls(token=_token(message), offset=message.get("offset"), length=message.get("length"))


@dataclass(slots=True, frozen=True)
class PrintJobComplete:
    token: str
    close_tab: bool = True

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> PrintJobComplete:
        token = _require_token(message, "Missing print job token")
        # Only an explicit `false` keeps the tab open.
        return cls(token=token, close_tab=message.get("closeTab") is not False)


@dataclass(slots=True, frozen=True)
class CacheOperation:
    operation: str
    key: str | None = None
    value: Any = None
    data_type: str | None = None

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> CacheOperation:
        operation = message.get("operation")
        key = message.get("key")
        data_type = message.get("dataType")
        if operation in ("get", "set") and not isinstance(key, str):
            raise InvalidInput("Cache key is required")
        return cls(
            operation=operation if isinstance(operation, str) else "",
            key=key if isinstance(key, str) else None,
            value=message.get("value"),
            data_type=data_type if isinstance(data_type, str) else None,
        )


@dataclass(slots=True, frozen=True)
class ReadLocalFile:
    file_path: str
    binary: bool = False

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> ReadLocalFile:
        path = message.get("filePath")
        if not isinstance(path, str) or not path.strip():
            raise InvalidInput("Missing file path")
        return cls(file_path=path, binary=bool(message.get("binary")))


@dataclass(slots=True, frozen=True)
class ScrollRequest:
    url: str
    position: Any = None

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> ScrollRequest:
        url = message.get("url")
        if not isinstance(url, str):
            raise InvalidInput("Missing url")
        return cls(url=url, position=message.get("position"))


__all__ = [
    "CacheOperation",
    "PrintJobComplete",
    "PrintJobFetchChunk",
    "PrintJobStart",
    "ReadLocalFile",
    "ScrollRequest",
    "TokenRequest",
    "UploadChunk",
    "UploadInit",
]
