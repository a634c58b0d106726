"""Core data types"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .constants import DETAIL_FAILED_MARKER


# ============================================================================
# Run selectors
# ============================================================================


class RunMode(str, Enum):
    """Trigger mode of a run"""

    INITIAL = "initial"
    UPDATE = "update"
    DAILY = "daily"

    @property
    def is_incremental(self) -> bool:
        """update/daily derive their threshold from the checkpoint"""
        return self is not RunMode.INITIAL


class StopReason(str, Enum):
    """Terminal state of the pagination state machine"""

    PAGE_LOAD_FAILURE = "page-load-failure"
    END_OF_RESULTS = "end-of-results"
    NO_NEW_CONTENT = "no-new-content"
    PAGE_LIMIT = "page-limit"
    MALFORMED_PAGE = "malformed-page"
    CANCELLED = "cancelled"


# ============================================================================
# Records
# ============================================================================


class ListingCandidate(BaseModel):
    """One scraped listing card before enrichment"""

    model_config = ConfigDict(frozen=True)

    title: str | None = Field(default=None, description="card title")
    location: str | None = Field(default=None, description="location label")
    price: str | None = Field(default=None, description="price as displayed")
    area: float | None = Field(default=None, description="area in square feet")
    listed_raw: str | None = Field(default=None, description="relative or absolute listing date text")
    url: str | None = Field(default=None, description="detail page url, primary identity")
    source_page: int = Field(default=1, description="listing page number the card came from")


class EnrichmentStatus(str, Enum):
    """Outcome of the secondary detail fetch"""

    SUCCESS = "success"
    DEGRADED = "degraded"  # page loaded, no description block
    FAILED = "failed"
    SKIPPED = "skipped"  # no url to fetch


class EnrichmentResult(BaseModel):
    """Typed result of a detail fetch, merged explicitly into the record"""

    model_config = ConfigDict(frozen=True)

    status: EnrichmentStatus
    description: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> "EnrichmentResult":
        return cls(status=EnrichmentStatus.FAILED, description=DETAIL_FAILED_MARKER, error=error)

    @classmethod
    def skipped(cls) -> "EnrichmentResult":
        return cls(status=EnrichmentStatus.SKIPPED)


class EnrichedRecord(BaseModel):
    """An admitted, fresh candidate plus detail-page fields. Immutable."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    location: str | None = None
    price: str | None = None
    area: float | None = None
    listed_raw: str | None = None
    url: str | None = None
    source_page: int = 1
    description: str | None = None
    listed_at: datetime | None = None
    enrichment_status: EnrichmentStatus = EnrichmentStatus.SKIPPED

    @classmethod
    def from_candidate(
        cls,
        candidate: ListingCandidate,
        listed_at: datetime | None,
        enrichment: EnrichmentResult,
    ) -> "EnrichedRecord":
        return cls(
            **candidate.model_dump(),
            description=enrichment.description,
            listed_at=listed_at,
            enrichment_status=enrichment.status,
        )

    def to_row(self) -> dict[str, Any]:
        """Row for the fixed output schema"""
        area: Any = self.area
        if area is not None and float(area).is_integer():
            area = int(area)
        return {
            "title": self.title,
            "location": self.location,
            "price": self.price,
            "area": area,
            "description": self.description,
            "listed": self.listed_raw,
            "url": self.url,
        }


# ============================================================================
# Run bookkeeping
# ============================================================================


@dataclass
class PageState:
    """Per-page counters, discarded after the stop decision"""

    page_number: int
    raw_item_count: int = 0
    admitted_count: int = 0
    inadmissible_count: int = 0
    duplicate_count: int = 0
    fresh_count: int = 0


class RunReport(BaseModel):
    """Summary returned to the trigger surface"""

    mode: RunMode
    start_url: str
    threshold: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    pages_visited: int = 0
    candidates_seen: int = 0
    candidates_admitted: int = 0
    records_emitted: int = 0
    stop_reason: StopReason | None = None
    checkpoint_updated: bool = False
    error: str | None = None

    def absorb(self, state: PageState) -> None:
        """Fold a finished page into the run totals"""
        self.pages_visited += 1
        self.candidates_seen += state.raw_item_count
        self.candidates_admitted += state.admitted_count
