"""Identity keys and per-run deduplication"""

from __future__ import annotations

from typing import Iterable, Optional, Set

from ..common.types import EnrichedRecord, ListingCandidate

KEY_SEPARATOR = "|"


def format_area(area: Optional[float]) -> str:
    """Stable text form: ``2000.0`` and ``2000`` give the same key"""
    if area is None:
        return ""
    area = float(area)
    return str(int(area)) if area.is_integer() else str(area)


def identity_key(candidate: ListingCandidate | EnrichedRecord) -> str:
    """``url`` when present, else the composite of the displayed fields"""
    if candidate.url:
        return candidate.url
    parts = (
        candidate.title or "",
        candidate.location or "",
        format_area(candidate.area),
        candidate.price or "",
        candidate.listed_raw or "",
    )
    return KEY_SEPARATOR.join(parts)


class Deduplicator:
    """Grow-only set of identity keys seen in this run (plus any seeded keys)"""

    def __init__(self, seed: Optional[Iterable[str]] = None):
        self._keys: Set[str] = set()
        if seed is not None:
            self.seed(seed)

    def seed(self, keys: Iterable[str]) -> int:
        """Pre-load keys from prior runs; returns how many were new"""
        before = len(self._keys)
        self._keys.update(key for key in keys if key)
        return len(self._keys) - before

    def admit(self, candidate: ListingCandidate) -> bool:
        """True and remember the key if unseen; False without side effect otherwise"""
        key = identity_key(candidate)
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def __len__(self) -> int:
        return len(self._keys)
