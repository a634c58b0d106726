"""Persistence: checkpoint, result sinks and the seen-key store"""

from .checkpoint import RunCheckpoint, compute_threshold
from .sink import CsvResultSink, ResultSink, S3ObjectStore
from .seen_store import RedisSeenStore

__all__ = [
    "RunCheckpoint",
    "compute_threshold",
    "CsvResultSink",
    "ResultSink",
    "S3ObjectStore",
    "RedisSeenStore",
]
