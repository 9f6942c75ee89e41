"""
Message handlers organized by domain.

All handlers follow the signature: async (ctx, message, sender) -> dict | None
"""

from .cache import CACHE_HANDLERS
from .downloads import DOWNLOAD_HANDLERS
from .files import FILE_HANDLERS
from .lifecycle import LIFECYCLE_HANDLERS
from .print_jobs import PRINT_JOB_HANDLERS
from .rendering import RENDERING_HANDLERS
from .scroll import SCROLL_HANDLERS
from .uploads import UPLOAD_HANDLERS

# Aggregate all handlers
ALL_HANDLERS: dict = {
    **LIFECYCLE_HANDLERS,
    **RENDERING_HANDLERS,
    **SCROLL_HANDLERS,
    **CACHE_HANDLERS,
    **FILE_HANDLERS,
    **UPLOAD_HANDLERS,
    **PRINT_JOB_HANDLERS,
    **DOWNLOAD_HANDLERS,
}

__all__ = [
    "ALL_HANDLERS",
    "CACHE_HANDLERS",
    "DOWNLOAD_HANDLERS",
    "FILE_HANDLERS",
    "LIFECYCLE_HANDLERS",
    "PRINT_JOB_HANDLERS",
    "RENDERING_HANDLERS",
    "SCROLL_HANDLERS",
    "UPLOAD_HANDLERS",
]
