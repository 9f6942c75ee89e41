from __future__ import annotations

import asyncio
import contextlib
import errno
import itertools
import json
import os
import re
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .config import BridgeConfig
from .context import BridgeContext
from .errors import CommunicationFailure
from .reaper import run_reaper
from .server.dispatch import MessageRouter, create_default_router
from .server.types import Sender

BRIDGE_PROTOCOL_VERSION = "2026-10-01"
BRIDGE_WELL_KNOWN_PATH = "/.well-known/markdown-viewer-bridge"

ROLE_PLATFORM = "platform"
ROLE_OFFSCREEN = "offscreen"

NO_RECEIVER_ERROR = "Could not establish connection. Receiving end does not exist."


def _now_ms() -> int:
    return int(time.time() * 1000)


def _import_websockets():
    try:
        import websockets  # type: ignore[import-not-found]

        return websockets
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "The background bridge requires the 'websockets' Python package. Install it (pip install websockets)."
        ) from exc


@dataclass
class _Connection:
    connection_id: str
    ws: Any
    sender: Sender
    connected_at_ms: int = field(default_factory=_now_ms)
    last_seen_ms: int = field(default_factory=_now_ms)


class BridgeGateway:
    """Local WebSocket gateway between the extension contexts and the coordinator.

    Design goals:
    - All coordination state lives in one BridgeContext, mutated only on the gateway loop.
    - Browser-side effects go to the `platform` connection as `rpc` frames.
    - Render requests go to the `offscreen` connection; its disconnect resets the
      offscreen belief.
    - Async server internally (runs in a dedicated daemon thread).
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        router: MessageRouter | None = None,
    ) -> None:
        self.config = config or BridgeConfig.from_env()
        self.host = self.config.host
        self.port = int(self.config.port)
        self._configured_port = int(self.port)

        self.router = router or create_default_router()
        self.context = BridgeContext.create(self.config, self)

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

        self._server: Any | None = None
        self._bind_error: str | None = None
        self._server_started_at_ms = _now_ms()

        self._connections: dict[str, _Connection] = {}
        self._by_role: dict[str, str] = {}
        self._conn_ids = itertools.count(1)

        self._next_id = 1
        # request id -> (future, connection id it was sent to)
        self._pending: dict[int, tuple[asyncio.Future, str]] = {}
        self._subscribers: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._reaper: asyncio.Task | None = None
        self._offscreen_connected: asyncio.Event | None = None

        # small gateway log buffer (for diagnostics)
        self._logs: deque[dict[str, Any]] = deque(maxlen=200)

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        with self._lock:
            self._bind_error = None
        # Detached again on shutdown; attach is idempotent.
        self.context.tab_cleanup.attach(self.subscribe)

        t = threading.Thread(target=self._run_thread, name="mdv-bridge-gateway", daemon=True)
        self._thread = t
        t.start()

        deadline = time.time() + max(0.05, float(wait_timeout))
        while time.time() < deadline:
            with self._lock:
                if self._server is not None:
                    return
            if not t.is_alive():
                break
            time.sleep(0.05)

        with self._lock:
            bind_error = self._bind_error
            server = self._server
        if server is not None:
            return
        if bind_error:
            raise RuntimeError(f"Bridge gateway bind failed on {self.host}:{self.port}: {bind_error}")
        raise RuntimeError(f"Bridge gateway failed to start on {self.host}:{self.port}")

    def stop(self, *, timeout: float = 2.0) -> None:
        self._stop.set()
        loop = self._loop
        if loop is not None and loop.is_running():
            with contextlib.suppress(Exception):
                asyncio.run_coroutine_threadsafe(self._shutdown_async(), loop).result(timeout=timeout)

        t = self._thread
        if t is not None:
            t.join(timeout=timeout)

    def status(self) -> dict[str, Any]:
        with self._lock:
            roles: dict[str, int] = {}
            for conn in self._connections.values():
                roles[conn.sender.role] = roles.get(conn.sender.role, 0) + 1
            listening = self._server is not None
            bind_error = self._bind_error
        ctx = self.context
        return {
            "listening": listening,
            "host": self.host,
            "port": self.port,
            "configuredPort": self._configured_port,
            "protocolVersion": BRIDGE_PROTOCOL_VERSION,
            "connections": roles,
            "platformConnected": ROLE_PLATFORM in roles,
            "offscreenCreated": bool(ctx.offscreen.created),
            "uploadSessions": len(ctx.sessions),
            "printJobs": len(ctx.print_jobs),
            **({"bindError": bind_error} if bind_error else {}),
            "serverStartedAtMs": int(self._server_started_at_ms),
        }

    def logs(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._logs)

    def _log(self, level: str, message: str) -> None:
        with self._lock:
            self._logs.append({"ts": _now_ms(), "level": level, "message": message[:2000]})

    # ─────────────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────────────

    def subscribe(self, name: str, callback: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        self._subscribers.setdefault(name, []).append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.get(name, []).remove(callback)

        return _unsubscribe

    def emit(self, name: str, event: dict[str, Any]) -> None:
        for cb in list(self._subscribers.get(name, [])):
            try:
                cb(event)
            except Exception as exc:  # noqa: BLE001
                self._log("error", f"event subscriber failed: {name}: {exc}")

    # ─────────────────────────────────────────────────────────────────────────
    # ExtensionPlatform (called on the gateway loop)
    # ─────────────────────────────────────────────────────────────────────────

    async def create_tab(self, url: str, *, active: bool = True) -> dict[str, Any]:
        res = await self._rpc(ROLE_PLATFORM, "tabs.create", {"url": url, "active": bool(active)})
        return res if isinstance(res, dict) else {}

    async def remove_tab(self, tab_id: int) -> None:
        await self._rpc(ROLE_PLATFORM, "tabs.remove", {"tabId": tab_id})

    async def create_offscreen_document(self, url: str, *, reasons: list[str], justification: str) -> None:
        await self._rpc(
            ROLE_PLATFORM,
            "offscreen.createDocument",
            {"url": url, "reasons": list(reasons), "justification": justification},
        )

    async def send_to_offscreen(self, message: dict[str, Any]) -> Any:
        if self._role_connection(ROLE_OFFSCREEN) is None:
            # A freshly created document needs a moment to load and connect.
            event = self._offscreen_connected
            timeout = float(self.config.offscreen_connect_timeout)
            if event is not None and timeout > 0:
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(event.wait(), timeout=timeout)
        return await self._rpc(ROLE_OFFSCREEN, "render", {"message": message})

    async def download(self, url: str, *, filename: str, save_as: bool = True) -> Any:
        return await self._rpc(
            ROLE_PLATFORM,
            "downloads.download",
            {"url": url, "filename": filename, "saveAs": bool(save_as)},
        )

    async def inject_content_script(self, tab_id: int, *, css: list[str], js: list[str]) -> None:
        await self._rpc(ROLE_PLATFORM, "scripting.inject", {"tabId": tab_id, "css": list(css), "js": list(js)})

    def _role_connection(self, role: str) -> _Connection | None:
        with self._lock:
            cid = self._by_role.get(role)
            return self._connections.get(cid) if cid else None

    async def _rpc(self, role: str, method: str, params: dict[str, Any] | None = None) -> Any:
        conn = self._role_connection(role)
        if conn is None:
            if role == ROLE_OFFSCREEN:
                raise CommunicationFailure(NO_RECEIVER_ERROR)
            raise CommunicationFailure("Extension platform is not connected")

        loop = asyncio.get_running_loop()
        with self._lock:
            req_id = self._next_id
            self._next_id += 1
            fut: asyncio.Future = loop.create_future()
            self._pending[req_id] = (fut, conn.connection_id)

        msg: dict[str, Any] = {"type": "rpc", "id": req_id, "method": method}
        if isinstance(params, dict) and params:
            msg["params"] = params

        timeout = max(0.1, float(self.config.rpc_timeout))
        try:
            try:
                await self._ws_send_json(conn.ws, msg)
            except Exception as exc:  # noqa: BLE001
                raise CommunicationFailure(f"RPC send failed: {exc}") from exc
            try:
                return await asyncio.wait_for(fut, timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise CommunicationFailure(f"RPC timed out: method={method}") from exc
        finally:
            with self._lock:
                self._pending.pop(req_id, None)

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (async)
    # ─────────────────────────────────────────────────────────────────────────

    def _port_candidates(self) -> list[int]:
        base = int(self._configured_port or 8766)
        span = max(0, int(self.config.port_span))
        return [p for p in range(base, base + span + 1) if 1 <= p <= 65535]

    def _run_thread(self) -> None:
        asyncio.run(self._run_async())

    def _register(self, ws: Any, sender: Sender) -> _Connection:
        conn = _Connection(connection_id=sender.connection_id or "", ws=ws, sender=sender)
        with self._lock:
            self._connections[conn.connection_id] = conn
            if sender.role in (ROLE_PLATFORM, ROLE_OFFSCREEN):
                # Replace the active client (MV3 service workers reconnect often).
                self._by_role[sender.role] = conn.connection_id
        if sender.role == ROLE_OFFSCREEN and self._offscreen_connected is not None:
            self._offscreen_connected.set()
        self._log("info", f"{sender.role} connected id={conn.connection_id}")
        return conn

    def _unregister(self, conn: _Connection) -> None:
        was_primary = False
        with self._lock:
            self._connections.pop(conn.connection_id, None)
            if self._by_role.get(conn.sender.role) == conn.connection_id:
                self._by_role.pop(conn.sender.role, None)
                was_primary = True
            pending = [
                (req_id, fut) for req_id, (fut, cid) in self._pending.items() if cid == conn.connection_id
            ]
            for req_id, _fut in pending:
                self._pending.pop(req_id, None)

        for _req_id, fut in pending:
            if not fut.done():
                if conn.sender.role == ROLE_OFFSCREEN:
                    fut.set_exception(CommunicationFailure(NO_RECEIVER_ERROR))
                else:
                    fut.set_exception(CommunicationFailure(f"{conn.sender.role} disconnected"))

        if conn.sender.role == ROLE_OFFSCREEN:
            if was_primary and self._offscreen_connected is not None:
                self._offscreen_connected.clear()
            self.context.offscreen.mark_disconnected()
        self._log("info", f"{conn.sender.role} disconnected id={conn.connection_id}")

    async def _run_async(self) -> None:
        websockets = _import_websockets()
        # websockets 14+ exposes HTTP types via websockets.http11
        from websockets.datastructures import Headers as WsHeaders  # type: ignore[import-not-found]
        from websockets.http11 import Response as WsResponse  # type: ignore[import-not-found]

        async def _handler(ws):  # type: ignore[no-untyped-def]
            # Expect hello as first message.
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=2.5)
            except Exception:
                self._log("warn", "client hello timeout")
                return

            hello = None
            try:
                hello = json.loads(raw)
            except Exception:
                hello = None

            if not isinstance(hello, dict) or hello.get("type") != "hello":
                with contextlib.suppress(Exception):
                    await ws.close(code=1002, reason="expected hello")
                return

            sender = Sender.from_hello(hello, connection_id=f"c{next(self._conn_ids)}")
            # Registered before the ack goes out: a client that saw helloAck is routable.
            conn = self._register(ws, sender)
            try:
                await self._ws_send_json(
                    ws,
                    {
                        "type": "helloAck",
                        "protocolVersion": BRIDGE_PROTOCOL_VERSION,
                        "connectionId": sender.connection_id,
                        "serverStartedAtMs": int(self._server_started_at_ms),
                    },
                )
                async for raw_msg in ws:
                    conn.last_seen_ms = _now_ms()
                    try:
                        msg = json.loads(raw_msg)
                    except Exception:
                        continue
                    await self._on_frame(conn, msg)
            except Exception:
                pass
            finally:
                self._unregister(conn)

        def _maybe_build_well_known_response(request) -> WsResponse | None:  # type: ignore[name-defined]
            path = str(getattr(request, "path", "") or "")
            if path != BRIDGE_WELL_KNOWN_PATH:
                return None
            payload = {
                "type": "markdownViewerBridge",
                "protocolVersion": BRIDGE_PROTOCOL_VERSION,
                "serverStartedAtMs": int(self._server_started_at_ms),
                "port": int(self.port),
                "pid": int(os.getpid()),
                "platformConnected": self._role_connection(ROLE_PLATFORM) is not None,
            }
            body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
            headers = WsHeaders()
            headers["Content-Type"] = "application/json"
            headers["Cache-Control"] = "no-store"
            headers["Access-Control-Allow-Origin"] = "*"
            return WsResponse(200, "OK", headers, body)

        def _http_not_found() -> WsResponse:  # type: ignore[name-defined]
            headers = WsHeaders()
            headers["Content-Type"] = "text/plain"
            headers["Cache-Control"] = "no-store"
            return WsResponse(404, "Not Found", headers, b"not found")

        async def _process_request(_conn, request):  # type: ignore[no-untyped-def]
            try:
                try:
                    upgrade = str(request.headers.get("Upgrade") or "").lower()
                except Exception:
                    upgrade = ""
                if upgrade == "websocket":
                    return None
                resp = _maybe_build_well_known_response(request)
                if resp is not None:
                    return resp
                return _http_not_found()
            except Exception:
                # Fail-open: if our HTTP handling breaks, don't wedge WS handshakes.
                return None

        self._loop = asyncio.get_running_loop()
        self._offscreen_connected = asyncio.Event()

        bind_error: str | None = None
        server = None
        for port in self._port_candidates():
            try:
                server = await websockets.serve(
                    _handler,
                    self.host,
                    int(port),
                    origins=[None, re.compile(r"^null$"), re.compile(r"^chrome-extension://[a-z0-9-]+/?$")],
                    process_request=_process_request,
                    max_size=8_000_000,
                    ping_interval=None,
                )
                with self._lock:
                    self.port = int(port)
                break
            except OSError as exc:
                bind_error = str(exc)
                if getattr(exc, "errno", None) in {errno.EADDRINUSE, errno.EACCES}:
                    continue
                break

        if server is None:
            with self._lock:
                self._bind_error = bind_error or "unknown bind error"
            self._log("error", f"gateway bind failed: {self._bind_error}")
            return

        with self._lock:
            self._server = server
        self._log("info", f"gateway listening on {self.host}:{self.port}")
        self._reaper = asyncio.create_task(run_reaper(self.context))

        try:
            while not self._stop.is_set():
                await asyncio.sleep(0.1)
        finally:
            await self._shutdown_async()

    async def _shutdown_async(self) -> None:
        reaper = self._reaper
        self._reaper = None
        if reaper is not None:
            reaper.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await reaper

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        with self._lock:
            srv = self._server
            self._server = None
            conns = list(self._connections.values())
        for conn in conns:
            with contextlib.suppress(Exception):
                await conn.ws.close()
        if srv is not None:
            with contextlib.suppress(Exception):
                srv.close()
                await srv.wait_closed()  # type: ignore[misc]
        self.context.tab_cleanup.detach()

    async def _on_frame(self, conn: _Connection, msg: Any) -> None:
        if not isinstance(msg, dict):
            return

        mtype = msg.get("type")

        if mtype == "message":
            # Handle each request in its own task so slow renders don't stall uploads.
            # Tasks start in arrival order, which keeps chunk order intact.
            task = asyncio.create_task(self._serve_request(conn, msg.get("id"), msg.get("message")))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        if mtype == "rpcResult":
            raw_id = msg.get("id")
            try:
                req_id = int(raw_id)
            except Exception:
                return
            with self._lock:
                entry = self._pending.get(req_id)
            if entry is None:
                return
            fut, _cid = entry
            if fut.done():
                return
            if msg.get("ok"):
                fut.set_result(msg.get("result"))
                return
            err = msg.get("error")
            err_msg = err.get("message") if isinstance(err, dict) else None
            fut.set_exception(CommunicationFailure(err_msg if isinstance(err_msg, str) else "RPC failed"))
            return

        if mtype == "event":
            name = msg.get("name")
            if conn.sender.role != ROLE_PLATFORM or not isinstance(name, str) or not name:
                return
            self.emit(name, msg)
            return

        if mtype == "ping":
            with contextlib.suppress(Exception):
                await self._ws_send_json(conn.ws, {"type": "pong", "ts": _now_ms()})
            return

    async def _serve_request(self, conn: _Connection, req_id: Any, message: Any) -> None:
        response = await self.router.dispatch(self.context, message, conn.sender)
        with contextlib.suppress(Exception):
            await self._ws_send_json(conn.ws, {"type": "response", "id": req_id, "response": response})

    async def _ws_send_json(self, ws, payload: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        await ws.send(json.dumps(payload, ensure_ascii=False))


__all__ = ["BRIDGE_PROTOCOL_VERSION", "BRIDGE_WELL_KNOWN_PATH", "BridgeGateway", "NO_RECEIVER_ERROR"]
