"""
Decision throughput measurement.
"""
from __future__ import annotations

import statistics
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Tuple

from .types import Brain, Perception


@dataclass
class BenchmarkResult:
    iterations: int
    mean_ms: float
    min_ms: float
    max_ms: float
    decisions_per_second: float

    def to_dict(self) -> Dict:
        return asdict(self)


def benchmark(fn: Callable[[], object], iterations: int = 1000) -> Tuple[float, float, float]:
    """
    Time repeated calls of ``fn``.

    Returns:
        (mean_ms, min_ms, max_ms)
    """
    times: List[float] = []

    for _ in range(iterations):
        start = time.perf_counter()
        fn()
        times.append((time.perf_counter() - start) * 1000)

    return statistics.mean(times), min(times), max(times)


def benchmark_forward(brain: Brain, perception: Perception, iterations: int = 100) -> BenchmarkResult:
    """Measure full decide() calls (forward pass plus bookkeeping)."""
    iterations = max(1, iterations)
    mean, min_t, max_t = benchmark(lambda: brain.decide(perception), iterations)
    return BenchmarkResult(
        iterations=iterations,
        mean_ms=mean,
        min_ms=min_t,
        max_ms=max_t,
        decisions_per_second=(1000.0 / mean) if mean > 0 else 0.0,
    )
