"""Run checkpoint persistence

The checkpoint is a single timestamp, ``{"lastRun": "<ISO-8601>"}``, saved
only after the result sink confirmed its write. Incremental runs use it as
their freshness threshold.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pandas as pd

from ..common.constants import DEFAULT_LOOKBACK_MONTHS
from ..common.exceptions import CheckpointError
from ..common.logger import get_logger
from ..common.types import RunMode
from ..common.utils.file_utils import file_exists, load_json, remove_file, save_json_atomic

logger = get_logger(__name__)

CHECKPOINT_KEY = "lastRun"


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 (``Z`` suffix accepted) -> aware UTC datetime"""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RunCheckpoint:
    """Reads and writes the last-successful-run timestamp"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return file_exists(self.path)

    def load(self) -> Optional[datetime]:
        """
        Returns:
            the stored timestamp, or None when missing or unreadable
        """
        data = load_json(self.path)
        if data is None:
            return None

        raw = data.get(CHECKPOINT_KEY) if isinstance(data, dict) else None
        if not isinstance(raw, str):
            logger.warning(f"checkpoint {self.path} has no '{CHECKPOINT_KEY}' value, ignoring it")
            return None
        try:
            return parse_timestamp(raw)
        except ValueError:
            logger.warning(f"checkpoint {self.path} holds an unreadable timestamp {raw!r}, ignoring it")
            return None

    def save(self, moment: datetime) -> None:
        """
        Raises:
            CheckpointError: the file could not be written
        """
        try:
            save_json_atomic(self.path, {CHECKPOINT_KEY: format_timestamp(moment)})
        except OSError as e:
            raise CheckpointError(str(self.path), f"checkpoint write failed ({e})") from e
        logger.info(f"checkpoint saved: {format_timestamp(moment)}")

    def reset(self) -> bool:
        return remove_file(self.path)


def compute_threshold(
    mode: RunMode,
    checkpoint: Optional[datetime],
    now: datetime,
    lookback_months: int = DEFAULT_LOOKBACK_MONTHS,
) -> datetime:
    """Freshness threshold for a run

    Incremental modes use the checkpoint; an initial run, or an incremental
    one without a usable checkpoint, looks back ``lookback_months`` calendar
    months from ``now``. A checkpoint in the future is clamped to ``now``.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if mode.is_incremental and checkpoint is not None:
        if checkpoint > now:
            logger.warning(f"checkpoint {format_timestamp(checkpoint)} is in the future, using now")
            return now
        return checkpoint
    return (pd.Timestamp(now) - pd.DateOffset(months=lookback_months)).to_pydatetime()
