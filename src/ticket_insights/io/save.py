"""Utilities for writing run artifacts."""

from __future__ import annotations

import json
import logging
import os
import secrets
import uuid
from collections.abc import Iterable
from contextlib import suppress
from pathlib import Path
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_RUN_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def ensure_directory(path: str | Path) -> Path:
    """Create a directory if it does not exist and return it."""

    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def new_run_id(size: int = 12) -> str:
    """Random URL-safe run identifier."""

    return "".join(secrets.choice(_RUN_ID_ALPHABET) for _ in range(size))


def _to_jsonable(row: Any) -> Any:
    if isinstance(row, BaseModel):
        return row.model_dump(mode="json")
    if hasattr(row, "to_dict"):
        return row.to_dict()
    return row


def _atomic_write_text(path: Path, content: str) -> None:
    """Write to a temp file in the same directory, then rename over the target."""

    ensure_directory(path.parent)
    temp_path = path.parent / f".{path.name}.{uuid.uuid4().hex}.tmp"
    try:
        with temp_path.open("w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    finally:
        if temp_path.exists():
            with suppress(OSError):
                temp_path.unlink()


def save_json(path: str | Path, payload: Any) -> Path:
    """Save a JSON document (dict, pydantic model or object with ``to_dict``)."""

    file_path = Path(path)
    content = json.dumps(_to_jsonable(payload), ensure_ascii=True, indent=2, default=str)
    _atomic_write_text(file_path, content + "\n")
    logger.debug("Wrote %s", file_path)
    return file_path


def save_jsonl(path: str | Path, rows: Iterable[Any]) -> Path:
    """Replace a JSONL file with ``rows``."""

    file_path = Path(path)
    content = "".join(
        json.dumps(_to_jsonable(row), ensure_ascii=True, default=str) + "\n" for row in rows
    )
    _atomic_write_text(file_path, content)
    return file_path


def append_jsonl(path: str | Path, rows: Iterable[Any]) -> Path:
    """Append rows to a JSONL file, creating it if needed."""

    file_path = Path(path)
    ensure_directory(file_path.parent)
    lines = [json.dumps(_to_jsonable(row), ensure_ascii=True, default=str) + "\n" for row in rows]
    if not lines:
        return file_path

    with file_path.open("a", encoding="utf-8") as handle:
        handle.writelines(lines)
        handle.flush()
        os.fsync(handle.fileno())
    return file_path
