"""Shared utilities"""

from .delay import exponential_backoff
from .file_utils import ensure_directory, file_exists, load_json, remove_file, save_json_atomic

__all__ = [
    "exponential_backoff",
    "ensure_directory",
    "file_exists",
    "load_json",
    "remove_file",
    "save_json_atomic",
]
