"""
Background bridge for the Markdown Viewer extension.

Runs the local WebSocket gateway that owns upload sessions, print jobs and the
offscreen renderer lifecycle until interrupted.
"""

from __future__ import annotations

import logging
import signal
import threading

from .config import BridgeConfig
from .gateway import BridgeGateway

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("mdv.bridge")

__all__ = ["main"]


def main() -> None:
    """Main entry point for the background bridge."""
    config = BridgeConfig.from_env()
    gateway = BridgeGateway(config)

    stop = threading.Event()

    def _request_stop(signum, _frame) -> None:  # noqa: ANN001
        logger.info("bridge_stopping signal=%s", signum)
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        gateway.start(wait_timeout=5.0)
    except RuntimeError as exc:
        logger.error("bridge_start_failed: %s", exc)
        raise SystemExit(1) from exc

    status = gateway.status()
    logger.info("bridge_listening host=%s port=%s", status.get("host"), status.get("port"))
    try:
        while not stop.wait(timeout=1.0):
            pass
    finally:
        gateway.stop(timeout=2.0)


if __name__ == "__main__":
    main()
