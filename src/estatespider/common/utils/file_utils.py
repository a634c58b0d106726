"""
File helpers used by the storage layer

- directory creation
- JSON save/load (atomic replace on save)
- file removal
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union

from loguru import logger


# ==================== directories ====================

def ensure_directory(path: Union[str, Path]) -> bool:
    """
    Make sure a directory exists, creating it if needed

    Args:
        path: directory path

    Returns:
        bool: True on success, False on failure

    Example:
        >>> ensure_directory("output")
        True
    """
    try:
        p = Path(path)
        if not p.exists():
            p.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Created directory: {p}")
        return True
    except OSError as e:
        logger.error(f"[FS_CREATE_ERROR] Failed to create directory {path}: {e}")
        return False


# ==================== files ====================

def file_exists(file_path: Union[str, Path]) -> bool:
    return Path(file_path).is_file()


def remove_file(file_path: Union[str, Path]) -> bool:
    """
    Delete a file

    Returns:
        bool: True if a file was removed
    """
    path = Path(file_path)
    if not path.exists():
        return False
    try:
        path.unlink()
        logger.debug(f"Removed file: {path}")
        return True
    except OSError as e:
        logger.error(f"[FS_REMOVE_ERROR] Failed to remove {file_path}: {e}")
        return False


# ==================== JSON ====================

def save_json_atomic(file_path: Union[str, Path], data: Union[dict, list], indent: int = 2) -> None:
    """
    Write JSON through a temp file and ``os.replace`` so readers never see a half-written file

    Args:
        file_path: destination
        data: JSON-serializable dict or list
        indent: indentation width

    Raises:
        OSError: the file could not be written
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=indent)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug(f"Saved file: {path}")


def load_json(file_path: Union[str, Path]) -> Any:
    """
    Load JSON from a file

    Args:
        file_path: file path

    Returns:
        parsed JSON, None when the file is missing or unreadable
    """
    path = Path(file_path)
    if not path.exists():
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"[FS_READ_WARN] Failed to read {file_path}: {e}")
        return None
