"""Common building blocks: config, types, errors, logging"""

from .config import Config, RunSettings
from .exceptions import (
    BrowserUnavailableError,
    EstateSpiderError,
    NavigationError,
    PageLoadError,
)
from .logger import get_logger
from .types import EnrichedRecord, ListingCandidate, RunMode, RunReport, StopReason

__all__ = [
    "Config",
    "RunSettings",
    "BrowserUnavailableError",
    "EstateSpiderError",
    "NavigationError",
    "PageLoadError",
    "get_logger",
    "EnrichedRecord",
    "ListingCandidate",
    "RunMode",
    "RunReport",
    "StopReason",
]
