from __future__ import annotations

import base64
import mimetypes
import ssl
import urllib.parse
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, HTTPSHandler, Request, build_opener, url2pathname

from .config import BridgeConfig
from .errors import ExternalCollaboratorFailure


class _SchemeLockedRedirectHandler(HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # noqa: ANN001
        # urllib may pass relative URLs here; normalize against the previous URL.
        absolute = urllib.parse.urljoin(req.full_url, str(newurl))
        if urllib.parse.urlparse(absolute).scheme not in ("http", "https"):
            raise ExternalCollaboratorFailure("Only http/https are supported (redirect)")
        return super().redirect_request(req, fp, code, msg, headers, absolute)


def _fetch_http(url: str, config: BridgeConfig) -> tuple[bytes, str]:
    req = Request(url, headers={"User-Agent": "markdown-viewer-bridge/1.0"})
    try:
        ctx = ssl.create_default_context()
        opener = build_opener(_SchemeLockedRedirectHandler(), HTTPSHandler(context=ctx))
        with opener.open(req, timeout=config.http_timeout) as resp:
            body = resp.read(config.http_max_bytes + 1)
            if len(body) > config.http_max_bytes:
                raise ExternalCollaboratorFailure(f"Failed to read file: larger than {config.http_max_bytes} bytes")
            return body, str(resp.headers.get("Content-Type") or "")
    except HTTPError as exc:
        raise ExternalCollaboratorFailure(f"Failed to read file: {exc.code} {exc.reason}") from exc
    except (TimeoutError, URLError) as exc:
        raise ExternalCollaboratorFailure(str(exc)) from exc


def _read_disk(path: Path, config: BridgeConfig) -> tuple[bytes, str]:
    try:
        if not path.is_file():
            raise ExternalCollaboratorFailure(f"Failed to read file: 404 Not Found ({path})")
        if path.stat().st_size > config.http_max_bytes:
            raise ExternalCollaboratorFailure(f"Failed to read file: larger than {config.http_max_bytes} bytes")
        body = path.read_bytes()
    except OSError as exc:
        raise ExternalCollaboratorFailure(f"Failed to read file: {exc}") from exc
    content_type = mimetypes.guess_type(path.name)[0] or ""
    return body, content_type


def read_local_file(file_path: str, config: BridgeConfig, *, binary: bool = False) -> dict[str, str]:
    """Read a file:// URL, plain path or http(s) URL.

    Text mode returns `{content}`; binary mode returns base64 `content` plus `contentType`.
    """
    raw = (file_path or "").strip()
    if not raw:
        raise ExternalCollaboratorFailure("Missing file path")

    parsed = urllib.parse.urlparse(raw)
    if parsed.scheme in ("http", "https"):
        body, content_type = _fetch_http(raw, config)
    elif parsed.scheme == "file":
        body, content_type = _read_disk(Path(url2pathname(parsed.path)), config)
    elif parsed.scheme and len(parsed.scheme) > 1:
        raise ExternalCollaboratorFailure(f"Unsupported scheme: {parsed.scheme}")
    else:
        # No scheme, or a Windows drive letter.
        body, content_type = _read_disk(Path(raw).expanduser(), config)

    if binary:
        return {"content": base64.b64encode(body).decode("ascii"), "contentType": content_type}
    return {"content": body.decode("utf-8", errors="replace")}


__all__ = ["read_local_file"]
