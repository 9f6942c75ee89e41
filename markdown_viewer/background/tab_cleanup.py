from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .print_jobs import PrintJobPipeline

logger = logging.getLogger("mdv.bridge.tab_cleanup")

TAB_REMOVED_EVENT = "tabs.onRemoved"

EventSubscriber = Callable[[str, Callable[[dict[str, Any]], None]], Callable[[], None]]


class TabCleanupReactor:
    """Drops the print job bound to a tab once the browser reports the tab closed.

    Purely reactive: it reclaims bookkeeping and never closes tabs itself.
    """

    def __init__(self, jobs: PrintJobPipeline) -> None:
        self._jobs = jobs
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self, subscribe: EventSubscriber) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = subscribe(TAB_REMOVED_EVENT, self.on_event)

    def detach(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()

    def on_event(self, event: dict[str, Any]) -> None:
        tab_id = event.get("tabId") if isinstance(event, dict) else None
        if tab_id is None:
            return
        self.on_tab_removed(tab_id)

    def on_tab_removed(self, tab_id: Any) -> str | None:
        token = self._jobs.discard_for_tab(tab_id)
        if token is not None:
            logger.info("print_job_dropped_tab_closed token=%s tab=%s", token, tab_id)
        return token


__all__ = ["TAB_REMOVED_EVENT", "TabCleanupReactor"]
