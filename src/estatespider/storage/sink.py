"""Result sinks

``CsvResultSink`` appends records to a CSV file with a fixed column set and
reads it back for dedup seeding. ``S3ObjectStore`` mirrors files to object
storage on a best-effort basis: a failed transfer is logged and the local
file stays authoritative.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable, Optional, Protocol, Sequence, Set

import boto3
import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError

from ..common.constants import RECORD_COLUMNS
from ..common.exceptions import SinkWriteError
from ..common.logger import get_logger
from ..common.types import EnrichedRecord, ListingCandidate
from ..crawler.dedup import identity_key

logger = get_logger(__name__)


class ResultSink(Protocol):
    async def write(self, records: Sequence[EnrichedRecord]) -> int: ...

    async def load_identity_keys(self) -> Set[str]: ...


class S3ObjectStore:
    """Best-effort file mirror in an S3 bucket"""

    def __init__(self, bucket: str, prefix: str = "", client=None):
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def key_for(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    async def download(self, name: str, destination: str | Path) -> bool:
        """Fetch ``name`` into ``destination``; False when missing or unreachable"""
        key = self.key_for(name)
        try:
            Path(destination).parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(self.client.download_file, self.bucket, key, str(destination))
        except (BotoCoreError, ClientError, OSError) as e:
            logger.warning(f"could not download s3://{self.bucket}/{key}: {e}")
            return False
        logger.info(f"downloaded s3://{self.bucket}/{key}")
        return True

    async def upload(self, source: str | Path, name: str) -> bool:
        key = self.key_for(name)
        try:
            await asyncio.to_thread(self.client.upload_file, str(source), self.bucket, key)
        except (BotoCoreError, ClientError, OSError) as e:
            logger.warning(f"could not upload {source} to s3://{self.bucket}/{key}: {e}")
            return False
        logger.info(f"uploaded s3://{self.bucket}/{key}")
        return True


def _row_to_candidate(row: dict) -> ListingCandidate:
    area_text = (row.get("area") or "").replace(",", "").strip()
    try:
        area = float(area_text) if area_text else None
    except ValueError:
        area = None
    return ListingCandidate(
        title=row.get("title") or None,
        location=row.get("location") or None,
        price=row.get("price") or None,
        area=area,
        listed_raw=row.get("listed") or None,
        url=row.get("url") or None,
    )


class CsvResultSink:
    """Append-only CSV with header written once"""

    def __init__(self, path: str | Path, object_store: Optional[S3ObjectStore] = None):
        self.path = Path(path)
        self.object_store = object_store

    async def load_identity_keys(self) -> Set[str]:
        """Identity keys of previously written rows; empty on any read problem"""
        if self.object_store is not None and not self.path.exists():
            await self.object_store.download(self.path.name, self.path)
        if not self.path.exists():
            return set()
        try:
            frame = await asyncio.to_thread(
                pd.read_csv, self.path, dtype=str, keep_default_na=False, on_bad_lines="skip"
            )
        except (OSError, ValueError) as e:
            logger.warning(f"could not read prior results {self.path}: {e}")
            return set()
        keys = {identity_key(_row_to_candidate(row)) for row in frame.to_dict("records")}
        keys.discard("")
        logger.info(f"loaded {len(keys)} identity key(s) from {self.path}")
        return keys

    async def write(self, records: Sequence[EnrichedRecord]) -> int:
        """
        Append ``records`` and mirror the file when object storage is configured

        Raises:
            SinkWriteError: the local write failed
        """
        if records:
            try:
                await asyncio.to_thread(self._append, [record.to_row() for record in records])
            except (OSError, ValueError) as e:
                raise SinkWriteError(str(self.path), f"result write failed ({e})") from e
            logger.info(f"appended {len(records)} record(s) to {self.path}")

        if self.object_store is not None and self.path.exists():
            await self.object_store.upload(self.path, self.path.name)
        return len(records)

    def _append(self, rows: Iterable[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        frame = pd.DataFrame(list(rows), columns=list(RECORD_COLUMNS), dtype=object)
        frame.to_csv(self.path, mode="a", header=write_header, index=False, encoding="utf-8")
