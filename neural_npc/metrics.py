"""
Per-agent decision profiling.

Tracks:
- Decision latency (full decide() call)
- Online update latency and the last online loss
- Throughput against a per-tick latency budget
"""
from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Deque, Dict, Optional

# Per-tick budget a single decision must fit in (p95)
DEFAULT_TARGET_MS = 1.0


@dataclass
class LatencyStats:
    """
    Running latency totals plus a sliding window of recent samples.

    Percentiles are nearest-rank over the window only, so they follow the
    agent's current behaviour rather than its whole lifetime.
    """
    window: int = 1000
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0
    _recent: Deque[float] = field(init=False, repr=False)

    def __post_init__(self):
        self._recent = deque(maxlen=max(1, self.window))

    def record(self, ms: float) -> None:
        self.count += 1
        self.total_ms += ms
        if ms < self.min_ms:
            self.min_ms = ms
        if ms > self.max_ms:
            self.max_ms = ms
        self._recent.append(ms)

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def percentile(self, p: float) -> float:
        if not self._recent:
            return 0.0
        ordered = sorted(self._recent)
        return ordered[min(int(len(ordered) * p / 100), len(ordered) - 1)]

    @property
    def p50(self) -> float:
        return self.percentile(50)

    @property
    def p95(self) -> float:
        return self.percentile(95)

    @property
    def p99(self) -> float:
        return self.percentile(99)

    def to_dict(self) -> Dict[str, float]:
        summary = {"count": self.count, "avg_ms": self.avg_ms, "min_ms": self.min_ms if self.count else 0.0,
                   "max_ms": self.max_ms}
        summary.update({f"p{p}_ms": self.percentile(p) for p in (50, 95, 99)})
        return {key: round(value, 3) for key, value in summary.items()}


@dataclass
class PerformanceReport:
    decisions: int
    decisions_per_second: float
    avg_decision_ms: float
    p95_decision_ms: float
    online_updates: int
    avg_online_update_ms: float
    last_online_loss: Optional[float]
    target_ms: float
    meets_target: bool

    def to_dict(self) -> Dict:
        return asdict(self)


class DecisionProfiler:
    """
    Latency bookkeeping owned by one agent.

    Example:
        >>> profiler = DecisionProfiler()
        >>> start = profiler.start()
        >>> ...  # decide
        >>> profiler.record_decision(start)
        >>> profiler.report().meets_target
    """

    def __init__(self, target_ms: float = DEFAULT_TARGET_MS):
        self.target_ms = target_ms
        self.decision_latency = LatencyStats()
        self.online_latency = LatencyStats()
        self.last_online_loss: Optional[float] = None

    @staticmethod
    def start() -> float:
        return time.perf_counter()

    def record_decision(self, start: float) -> float:
        """Record a decision started at ``start``; returns its latency in ms."""
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        self.decision_latency.record(elapsed_ms)
        return elapsed_ms

    def record_online_update(self, elapsed_ms: float, loss: Optional[float]) -> None:
        self.online_latency.record(elapsed_ms)
        if loss is not None:
            self.last_online_loss = loss

    def report(self) -> PerformanceReport:
        avg = self.decision_latency.avg_ms
        p95 = self.decision_latency.p95
        return PerformanceReport(
            decisions=self.decision_latency.count,
            decisions_per_second=(1000.0 / avg) if avg > 0 else 0.0,
            avg_decision_ms=avg,
            p95_decision_ms=p95,
            online_updates=self.online_latency.count,
            avg_online_update_ms=self.online_latency.avg_ms,
            last_online_loss=self.last_online_loss,
            target_ms=self.target_ms,
            meets_target=self.decision_latency.count > 0 and p95 <= self.target_ms,
        )

    def reset(self) -> None:
        self.decision_latency = LatencyStats()
        self.online_latency = LatencyStats()
        self.last_online_loss = None
