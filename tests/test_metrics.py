"""
Tests for latency statistics, the decision profiler and the benchmark helpers.
"""
import pytest

from neural_npc.benchmark import benchmark, benchmark_forward
from neural_npc.config import BrainPresets
from neural_npc.metrics import DecisionProfiler, LatencyStats
from neural_npc.neural.agent import NeuralNetBrain

from conftest import busy_perception


class TestLatencyStats:
    def test_empty(self):
        stats = LatencyStats()
        assert stats.avg_ms == 0.0
        assert stats.p95 == 0.0
        assert stats.to_dict()["min_ms"] == 0

    def test_record(self):
        stats = LatencyStats()
        for ms in range(1, 101):
            stats.record(float(ms))
        assert stats.count == 100
        assert stats.avg_ms == pytest.approx(50.5)
        assert stats.min_ms == 1.0
        assert stats.max_ms == 100.0
        assert stats.p50 == 51.0
        assert stats.p95 == 96.0

    def test_sample_window(self):
        stats = LatencyStats(window=5)
        for ms in range(10):
            stats.record(float(ms))
        assert stats.count == 10
        assert stats.percentile(0) == 5.0


class TestDecisionProfiler:
    def test_report(self):
        profiler = DecisionProfiler(target_ms=1000.0)
        for _ in range(3):
            profiler.record_decision(profiler.start())
        profiler.record_online_update(2.0, 0.7)
        profiler.record_online_update(4.0, None)

        report = profiler.report()
        assert report.decisions == 3
        assert report.online_updates == 2
        assert report.avg_online_update_ms == pytest.approx(3.0)
        assert report.last_online_loss == 0.7
        assert report.meets_target
        assert report.to_dict()["target_ms"] == 1000.0

    def test_empty_report_misses_target(self):
        report = DecisionProfiler().report()
        assert report.decisions == 0
        assert report.decisions_per_second == 0.0
        assert not report.meets_target

    def test_reset(self):
        profiler = DecisionProfiler()
        profiler.record_decision(profiler.start())
        profiler.record_online_update(1.0, 0.5)
        profiler.reset()
        assert profiler.report().decisions == 0
        assert profiler.last_online_loss is None


class TestBenchmark:
    def test_benchmark(self):
        calls = []
        mean, min_t, max_t = benchmark(lambda: calls.append(1), iterations=20)
        assert len(calls) == 20
        assert min_t <= mean <= max_t

    def test_benchmark_forward(self):
        brain = NeuralNetBrain(BrainPresets.deterministic_test())
        result = benchmark_forward(brain, busy_perception(), iterations=5)
        assert result.iterations == 5
        assert result.mean_ms > 0.0
        assert result.decisions_per_second > 0.0
        assert brain.ticks == 5


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
