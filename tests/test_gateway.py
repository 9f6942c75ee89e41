from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import socket
import threading
import urllib.error
import urllib.request
from collections.abc import Callable
from typing import Any

import pytest

from markdown_viewer.background.config import BridgeConfig
from markdown_viewer.background.gateway import BRIDGE_PROTOCOL_VERSION, BRIDGE_WELL_KNOWN_PATH, BridgeGateway
from markdown_viewer.background.server.dispatch import create_default_router


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def _websockets():
    try:
        import websockets  # type: ignore[import-not-found]
    except Exception:  # noqa: BLE001
        pytest.skip("websockets not installed")
    return websockets


class _Peer:
    """One extension context talking to the gateway over its own socket."""

    def __init__(self, ws: Any, rpc_handler: Callable[[str, dict[str, Any]], Any] | None = None) -> None:
        self.ws = ws
        self.rpc_handler = rpc_handler
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []
        self._ids = itertools.count(1)
        self._waiting: dict[int, asyncio.Future] = {}
        self._reader = asyncio.create_task(self._read())

    async def _read(self) -> None:
        with contextlib.suppress(Exception):
            async for raw in self.ws:
                msg = json.loads(raw)
                if msg.get("type") == "response":
                    fut = self._waiting.pop(msg.get("id"), None)
                    if fut is not None and not fut.done():
                        fut.set_result(msg.get("response"))
                elif msg.get("type") == "rpc":
                    params = msg.get("params") if isinstance(msg.get("params"), dict) else {}
                    self.rpc_calls.append((msg["method"], params))
                    result = self.rpc_handler(msg["method"], params) if self.rpc_handler else None
                    await self.ws.send(json.dumps({"type": "rpcResult", "id": msg["id"], "ok": True, "result": result}))

    async def send(self, message: dict[str, Any]) -> asyncio.Future:
        req_id = next(self._ids)
        fut = asyncio.get_running_loop().create_future()
        self._waiting[req_id] = fut
        await self.ws.send(json.dumps({"type": "message", "id": req_id, "message": message}))
        return fut

    async def request(self, message: dict[str, Any], timeout: float = 5.0) -> Any:
        return await asyncio.wait_for(await self.send(message), timeout=timeout)

    async def close(self) -> None:
        await self.ws.close()
        self._reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._reader


async def _connect(
    port: int,
    role: str,
    *,
    tab_id: int | None = None,
    rpc_handler: Callable[[str, dict[str, Any]], Any] | None = None,
) -> _Peer:
    websockets = _websockets()
    ws = await websockets.connect(f"ws://127.0.0.1:{port}", ping_interval=None)
    hello: dict[str, Any] = {"type": "hello", "role": role}
    if tab_id is not None:
        hello["tabId"] = tab_id
    await ws.send(json.dumps(hello))
    ack = json.loads(await ws.recv())
    assert ack.get("type") == "helloAck"
    assert ack.get("protocolVersion") == BRIDGE_PROTOCOL_VERSION
    return _Peer(ws, rpc_handler)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.02)
    return predicate()


def _platform_rpc(method: str, params: dict[str, Any]) -> Any:
    if method == "tabs.create":
        return {"id": 77, "url": params.get("url")}
    if method == "downloads.download":
        return 9
    return None


@pytest.fixture
def gateway():
    _websockets()
    gw = BridgeGateway(
        BridgeConfig(
            port=_free_port(),
            port_span=0,
            extension_url="chrome-extension://testext/",
            rpc_timeout=2.0,
            offscreen_connect_timeout=1.0,
        )
    )
    gw.start()
    try:
        yield gw
    finally:
        gw.stop(timeout=2.0)


def test_print_flow_across_contexts(gateway: BridgeGateway) -> None:
    port = gateway.port

    async def _main() -> None:
        platform = await _connect(port, "platform", rpc_handler=_platform_rpc)
        content = await _connect(port, "content", tab_id=5)
        try:
            init = await content.request({"type": "UPLOAD_INIT", "payload": {"purpose": "print", "chunkSize": 4}})
            token = init["token"]

            # Pipelined chunks: no waiting between sends.
            pending = [
                await content.send({"type": "UPLOAD_CHUNK", "token": token, "chunk": c})
                for c in ("<p>", "Hel", "lo</", "p>")
            ]
            assert await asyncio.wait_for(asyncio.gather(*pending), timeout=5) == [{"success": True}] * 4

            start = await content.request({"type": "PRINT_JOB_START", "token": token, "payload": {"title": "Hi"}})
            assert start == {"success": True, "token": token}
            method, params = platform.rpc_calls[0]
            assert method == "tabs.create"
            assert params["url"] == f"chrome-extension://testext/print.html?token={token}"

            printer = await _connect(port, "print", tab_id=77)
            meta = await printer.request({"type": "PRINT_JOB_REQUEST", "token": token})
            assert meta["payload"]["title"] == "Hi"
            assert meta["payload"]["length"] == len("<p>Hello</p>")

            chunk = await printer.request({"type": "PRINT_JOB_FETCH_CHUNK", "token": token, "offset": 0})
            assert chunk == {"success": True, "chunk": "<p>Hello</p>", "nextOffset": 12}

            assert await printer.request({"type": "PRINT_JOB_COMPLETE", "token": token}) == {"success": True}
            assert ("tabs.remove", {"tabId": 77}) in platform.rpc_calls
            await printer.close()
        finally:
            await content.close()
            await platform.close()

    asyncio.run(_main())
    assert gateway.status()["printJobs"] == 0


def test_tab_removed_event_drops_print_job(gateway: BridgeGateway) -> None:
    port = gateway.port

    async def _main() -> None:
        platform = await _connect(port, "platform", rpc_handler=_platform_rpc)
        content = await _connect(port, "content", tab_id=5)
        try:
            token = (await content.request({"type": "UPLOAD_INIT"}))["token"]
            await content.request({"type": "UPLOAD_CHUNK", "token": token, "chunk": "x"})
            await content.request({"type": "PRINT_JOB_START", "token": token})
            assert gateway.status()["printJobs"] == 1

            # Events from non-platform connections are ignored.
            await content.ws.send(json.dumps({"type": "event", "name": "tabs.onRemoved", "tabId": 77}))
            await platform.ws.send(json.dumps({"type": "event", "name": "tabs.onRemoved", "tabId": 77}))
            assert await _wait_until(lambda: gateway.status()["printJobs"] == 0)

            res = await content.request({"type": "PRINT_JOB_REQUEST", "token": token})
            assert res == {"error": "Print job not found"}
        finally:
            await content.close()
            await platform.close()

    asyncio.run(_main())


def test_render_through_offscreen_and_disconnect_resets_belief(gateway: BridgeGateway) -> None:
    port = gateway.port
    rendered = {"success": True, "dataUrl": "data:image/png;base64,AAAA"}

    async def _main() -> None:
        platform = await _connect(port, "platform", rpc_handler=_platform_rpc)
        offscreen = await _connect(port, "offscreen", rpc_handler=lambda _m, _p: rendered)
        content = await _connect(port, "content", tab_id=5)
        try:
            res = await content.request({"type": "renderMermaid", "code": "graph TD; A-->B"})
            assert res == rendered
            assert [m for m, _ in platform.rpc_calls] == ["offscreen.createDocument"]
            assert offscreen.rpc_calls[0][0] == "render"
            assert offscreen.rpc_calls[0][1]["message"]["type"] == "renderMermaid"
            assert gateway.status()["offscreenCreated"] is True

            await offscreen.close()
            assert await _wait_until(lambda: gateway.status()["offscreenCreated"] is False)

            # Recreated on demand, then the render fails fast with no receiver.
            res = await content.request({"type": "renderSvg", "svg": "<svg/>"}, timeout=10)
            assert res["error"].startswith("Offscreen communication failed")
            assert [m for m, _ in platform.rpc_calls].count("offscreen.createDocument") == 2
        finally:
            await content.close()
            await platform.close()

    asyncio.run(_main())


def test_requests_without_platform_get_errors(gateway: BridgeGateway) -> None:
    port = gateway.port

    async def _main() -> None:
        content = await _connect(port, "content")
        try:
            token = (await content.request({"type": "UPLOAD_INIT"}))["token"]
            res = await content.request({"type": "PRINT_JOB_START", "token": token})
            assert res == {"error": "Extension platform is not connected"}
            assert await content.request({"type": "nope"}) is None
        finally:
            await content.close()

    asyncio.run(_main())


def test_hello_is_required(gateway: BridgeGateway) -> None:
    websockets = _websockets()

    async def _main() -> None:
        async with websockets.connect(f"ws://127.0.0.1:{gateway.port}", ping_interval=None) as ws:
            await ws.send(json.dumps({"type": "message", "id": 1, "message": {"type": "UPLOAD_INIT"}}))
            with pytest.raises(websockets.ConnectionClosed):
                await asyncio.wait_for(ws.recv(), timeout=3)

    asyncio.run(_main())


def test_ping_pong(gateway: BridgeGateway) -> None:
    async def _main() -> None:
        peer = await _connect(gateway.port, "popup")
        peer._reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await peer._reader
        await peer.ws.send(json.dumps({"type": "ping"}))
        pong = json.loads(await asyncio.wait_for(peer.ws.recv(), timeout=3))
        assert pong["type"] == "pong"
        await peer.ws.close()

    asyncio.run(_main())


def test_well_known_discovery_endpoint(gateway: BridgeGateway) -> None:
    url = f"http://127.0.0.1:{gateway.port}{BRIDGE_WELL_KNOWN_PATH}"
    with urllib.request.urlopen(url, timeout=1.0) as resp:  # noqa: S310
        data = json.loads(resp.read().decode("utf-8"))
    assert data["type"] == "markdownViewerBridge"
    assert data["protocolVersion"] == BRIDGE_PROTOCOL_VERSION
    assert int(data["port"]) == gateway.port
    assert data["platformConnected"] is False

    with pytest.raises(urllib.error.HTTPError) as exc_info:
        urllib.request.urlopen(f"http://127.0.0.1:{gateway.port}/other", timeout=1.0)  # noqa: S310
    assert exc_info.value.code == 404


def test_bind_failure_is_reported() -> None:
    _websockets()
    port = _free_port()
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", port))
    blocker.listen(1)
    gw = BridgeGateway(BridgeConfig(port=port, port_span=0))
    try:
        with pytest.raises(RuntimeError, match="bind failed"):
            gw.start(wait_timeout=1.0)
        assert gw.status()["listening"] is False
        assert gw.status()["bindError"]
    finally:
        blocker.close()
        gw.stop(timeout=1.0)


def test_gateway_constructs_without_starting() -> None:
    gw = BridgeGateway(BridgeConfig(port=_free_port(), port_span=0))
    st = gw.status()
    assert st["listening"] is False
    assert st["printJobs"] == 0
    assert gw.logs() == []


def test_restart_keeps_tab_cleanup_attached() -> None:
    _websockets()
    gw = BridgeGateway(BridgeConfig(port=_free_port(), port_span=0, extension_url="chrome-extension://testext/"))
    try:
        gw.start()
        gw.stop(timeout=2.0)
        gw.start()

        token, _ = gw.context.sessions.open("print")
        gw.context.print_jobs.promote(token).tab_id = 9
        gw.emit("tabs.onRemoved", {"name": "tabs.onRemoved", "tabId": 9})
        assert token not in gw.context.print_jobs
    finally:
        gw.stop(timeout=2.0)


def test_stop_cancels_in_flight_requests() -> None:
    _websockets()
    started = threading.Event()
    cancelled = threading.Event()

    async def _slow(_ctx, _message, _sender):  # noqa: ANN001
        started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return {"success": True}

    router = create_default_router()
    router.register("slowRender", _slow)
    gw = BridgeGateway(BridgeConfig(port=_free_port(), port_span=0), router=router)
    gw.start()

    async def _main() -> None:
        peer = await _connect(gw.port, "content")
        await peer.send({"type": "slowRender"})
        assert await _wait_until(started.is_set)
        await asyncio.to_thread(gw.stop, timeout=2.0)
        assert cancelled.is_set()
        with contextlib.suppress(Exception):
            await peer.close()

    try:
        asyncio.run(_main())
    finally:
        gw.stop(timeout=1.0)
