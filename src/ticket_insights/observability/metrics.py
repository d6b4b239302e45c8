"""Rolling per-agent performance metrics."""

from __future__ import annotations

import threading
from collections import defaultdict, deque

from ticket_insights.schemas import PerformanceRecord


class AgentMetricsStore:
    """Bounded store of PerformanceRecord rows with simple aggregations."""

    def __init__(self, capacity: int = 1000) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}.")
        self._records: deque[PerformanceRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, record: PerformanceRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self, agent_name: str | None = None) -> list[PerformanceRecord]:
        with self._lock:
            rows = list(self._records)
        if agent_name is None:
            return rows
        return [row for row in rows if row.agent_name == agent_name]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def average_duration_ms(self, agent_name: str | None = None) -> dict[str, float]:
        """Average duration keyed by ``agent:model``."""

        grouped: dict[str, list[float]] = defaultdict(list)
        for row in self.records(agent_name):
            grouped[f"{row.agent_name}:{row.model}"].append(row.duration_ms)
        return {key: sum(values) / len(values) for key, values in grouped.items()}

    def success_rate(self, agent_name: str) -> float | None:
        rows = self.records(agent_name)
        if not rows:
            return None
        return sum(1 for row in rows if row.success) / len(rows)

    def summary(self) -> dict[str, dict]:
        """Per-agent run count, success rate and average latency."""

        names = sorted({row.agent_name for row in self.records()})
        result: dict[str, dict] = {}
        for name in names:
            rows = self.records(name)
            result[name] = {
                "runs": len(rows),
                "success_rate": self.success_rate(name),
                "avg_duration_ms": sum(row.duration_ms for row in rows) / len(rows),
            }
        return result


_store_lock = threading.Lock()
_store: AgentMetricsStore | None = None


def get_agent_metrics_store(capacity: int = 1000) -> AgentMetricsStore:
    """Return the process-wide metrics store, creating it on first use."""

    global _store
    with _store_lock:
        if _store is None:
            _store = AgentMetricsStore(capacity)
        return _store
