"""EstateSpider - incremental listing harvester for JS-rendered listing sites"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__version__ = "0.1.0"

if TYPE_CHECKING:
    from .crawler.controller import PaginationController as PaginationController
    from .pipeline.runner import run_harvest as run_harvest

__all__ = [
    "__version__",
    "PaginationController",
    "run_harvest",
]


def __getattr__(name: str) -> Any:
    """Lazy exports to avoid importing heavy runtime dependencies at package import time."""
    if name == "PaginationController":
        from .crawler.controller import PaginationController

        return PaginationController
    if name == "run_harvest":
        from .pipeline.runner import run_harvest

        return run_harvest
    raise AttributeError(f"module 'estatespider' has no attribute '{name}'")
