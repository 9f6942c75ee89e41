from __future__ import annotations

import os
from dataclasses import dataclass


def _int_env(name: str, *, default: int, lo: int, hi: int) -> int:
    try:
        val = int(os.environ.get(name) or default)
    except Exception:
        val = default
    return max(lo, min(val, hi))


def _float_env(name: str, *, default: float, lo: float, hi: float) -> float:
    try:
        val = float(os.environ.get(name) or default)
    except Exception:
        val = default
    return max(lo, min(val, hi))


def _extension_base_url() -> str:
    raw = (os.environ.get("MDV_EXTENSION_URL") or "").strip()
    if raw:
        return raw if raw.endswith("/") else raw + "/"
    ext_id = (os.environ.get("MDV_EXTENSION_ID") or "").strip() or "markdown-viewer"
    return f"chrome-extension://{ext_id}/"


@dataclass
class BridgeConfig:
    host: str = "127.0.0.1"
    port: int = 8766
    port_span: int = 10
    extension_url: str = "chrome-extension://markdown-viewer/"
    rpc_timeout: float = 10.0
    offscreen_connect_timeout: float = 5.0
    session_ttl: float = 600.0
    job_ttl: float = 1800.0
    reap_interval: float = 60.0
    http_timeout: float = 10.0
    http_max_bytes: int = 20_000_000
    cache_max_items: int = 1000

    @classmethod
    def from_env(cls) -> BridgeConfig:
        host = (os.environ.get("MDV_BRIDGE_HOST") or "127.0.0.1").strip() or "127.0.0.1"
        return cls(
            host=host,
            port=_int_env("MDV_BRIDGE_PORT", default=8766, lo=1, hi=65535),
            port_span=_int_env("MDV_BRIDGE_PORT_SPAN", default=10, lo=0, hi=250),
            extension_url=_extension_base_url(),
            rpc_timeout=_float_env("MDV_RPC_TIMEOUT", default=10.0, lo=0.1, hi=120.0),
            offscreen_connect_timeout=_float_env("MDV_OFFSCREEN_CONNECT_TIMEOUT", default=5.0, lo=0.0, hi=60.0),
            session_ttl=_float_env("MDV_SESSION_TTL", default=600.0, lo=1.0, hi=86400.0),
            job_ttl=_float_env("MDV_JOB_TTL", default=1800.0, lo=1.0, hi=86400.0),
            reap_interval=_float_env("MDV_REAP_INTERVAL", default=60.0, lo=0.0, hi=3600.0),
            http_timeout=_float_env("MDV_HTTP_TIMEOUT", default=10.0, lo=0.5, hi=300.0),
            http_max_bytes=_int_env("MDV_HTTP_MAX_BYTES", default=20_000_000, lo=1024, hi=500_000_000),
            cache_max_items=_int_env("MDV_CACHE_MAX_ITEMS", default=1000, lo=1, hi=1_000_000),
        )

    def extension_page(self, path: str) -> str:
        return self.extension_url + path.lstrip("/")
