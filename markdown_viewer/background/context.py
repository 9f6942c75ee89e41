from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .cache import CacheStore, MemoryCacheStore
from .config import BridgeConfig
from .offscreen import OFFSCREEN_PAGE, OffscreenController
from .platform import ExtensionPlatform
from .print_jobs import PrintJobPipeline
from .scroll import ScrollPositionStore
from .sessions import SessionRegistry
from .tab_cleanup import TabCleanupReactor

logger = logging.getLogger("mdv.bridge.context")

CacheFactory = Callable[[], CacheStore]


@dataclass
class BridgeContext:
    """All coordination state for one bridge lifetime.

    Handlers receive this explicitly; nothing lives at module level, so tests can build
    as many isolated contexts as they need.
    """

    config: BridgeConfig
    platform: ExtensionPlatform
    sessions: SessionRegistry
    print_jobs: PrintJobPipeline
    offscreen: OffscreenController
    tab_cleanup: TabCleanupReactor
    scroll: ScrollPositionStore = field(default_factory=ScrollPositionStore)
    cache_factory: CacheFactory | None = None
    cache: CacheStore | None = None

    @classmethod
    def create(
        cls,
        config: BridgeConfig,
        platform: ExtensionPlatform,
        *,
        cache_factory: CacheFactory | None = None,
    ) -> BridgeContext:
        sessions = SessionRegistry(is_reserved=lambda token: token in print_jobs)
        print_jobs = PrintJobPipeline(sessions, platform, page_url=config.extension_page)
        ctx = cls(
            config=config,
            platform=platform,
            sessions=sessions,
            print_jobs=print_jobs,
            offscreen=OffscreenController(platform, document_url=config.extension_page(OFFSCREEN_PAGE)),
            tab_cleanup=TabCleanupReactor(print_jobs),
            cache_factory=cache_factory or (lambda: MemoryCacheStore(max_items=config.cache_max_items)),
        )
        ctx.ensure_cache()
        return ctx

    def ensure_cache(self) -> CacheStore | None:
        if self.cache is not None or self.cache_factory is None:
            return self.cache
        try:
            self.cache = self.cache_factory()
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache_init_failed error=%s", exc)
            self.cache = None
        return self.cache


__all__ = ["BridgeContext", "CacheFactory"]
