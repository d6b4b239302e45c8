"""Bounded, thread-safe diagnostics buffer for outbound model traffic."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Literal

logger = logging.getLogger(__name__)

Direction = Literal["sent", "received", "error"]


@dataclass(frozen=True)
class DiagnosticEntry:
    """One observed model interaction."""

    direction: Direction
    flow_name: str
    payload_size: int
    duration_ms: float | None = None
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        row = asdict(self)
        row["timestamp"] = self.timestamp.isoformat()
        return row


class DiagnosticsBuffer:
    """Ring buffer capped at a fixed entry count; the oldest entries are evicted first."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}.")
        self._entries: deque[DiagnosticEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def append(self, entry: DiagnosticEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def snapshot(self) -> list[DiagnosticEntry]:
        """Return the buffered entries without removing them."""

        with self._lock:
            return list(self._entries)

    def drain(self) -> list[DiagnosticEntry]:
        """Return and remove all buffered entries."""

        with self._lock:
            entries = list(self._entries)
            self._entries.clear()
        return entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_buffer_lock = threading.Lock()
_buffer: DiagnosticsBuffer | None = None


def init_diagnostics_buffer(capacity: int = 100) -> DiagnosticsBuffer:
    """Create (or replace) the process-wide diagnostics buffer."""

    global _buffer
    with _buffer_lock:
        _buffer = DiagnosticsBuffer(capacity)
        return _buffer


def get_diagnostics_buffer() -> DiagnosticsBuffer:
    """Return the process-wide buffer, initializing it with defaults on first use."""

    global _buffer
    with _buffer_lock:
        if _buffer is None:
            _buffer = DiagnosticsBuffer()
        return _buffer


def record_diagnostic(
    buffer: DiagnosticsBuffer | None,
    *,
    direction: Direction,
    flow_name: str,
    payload_size: int,
    duration_ms: float | None = None,
    detail: str = "",
) -> None:
    """Append an entry; sink failures are logged and never propagate."""

    if buffer is None:
        return
    try:
        buffer.append(
            DiagnosticEntry(
                direction=direction,
                flow_name=flow_name,
                payload_size=payload_size,
                duration_ms=duration_ms,
                detail=detail[:500],
            )
        )
    except Exception:
        logger.warning("Failed to record diagnostic entry for %s.", flow_name, exc_info=True)
