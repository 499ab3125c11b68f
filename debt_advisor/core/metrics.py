"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class MetricSnapshot:
    total_turns: int
    outcomes: Dict[str, int]
    steps: Dict[str, int]


class MetricsCollector:
    """Thread-safe counter storage for turn outcomes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_turns = 0
        self._outcomes: Counter[str] = Counter()
        self._steps: Counter[str] = Counter()

    def record_turn(self, outcome: str, step: int) -> None:
        with self._lock:
            self._total_turns += 1
            self._outcomes[outcome] += 1
            self._steps[str(step)] += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_turns=self._total_turns,
                outcomes=dict(self._outcomes),
                steps=dict(self._steps),
            )
