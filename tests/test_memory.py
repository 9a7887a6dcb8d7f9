"""
Tests for significance scoring and the episodic memory buffer.
"""
import numpy as np
import pytest

from neural_npc.neural.encoders import ExperienceEncoder
from neural_npc.neural.episodic_memory import EpisodicMemoryBuffer, compute_significance
from neural_npc.types import ActionType

from conftest import make_experience


@pytest.fixture
def encoder():
    return ExperienceEncoder(rng=np.random.default_rng(0))


class TestSignificance:
    """Significance scoring rules."""

    def test_baseline(self):
        """A quiet, successful, non-social step scores the 0.3 baseline."""
        assert compute_significance(make_experience()) == pytest.approx(0.3)

    def test_needs_bonus(self):
        exp = make_experience(needs_delta=(0.05, 0.0, 0.0, 0.0, 0.0))
        assert compute_significance(exp) == pytest.approx(0.4)

    def test_needs_bonus_capped(self):
        exp = make_experience(needs_delta=(0.5, 0.5, 0.0, 0.0, 0.0))
        assert compute_significance(exp) == pytest.approx(0.6)

    def test_novelty_failure_and_social(self):
        exp = make_experience(
            action=ActionType.SOCIALIZE.index,
            was_successful=False,
            novelty=0.5,
        )
        assert compute_significance(exp) == pytest.approx(0.3 + 0.1 + 0.15 + 0.1)

    def test_critical_channels(self):
        """Low hunger/safety channels each add 0.3."""
        embedding = [0.5] * 64
        embedding[0] = 0.05
        assert compute_significance(make_experience(embedding=embedding)) == pytest.approx(0.6)

        embedding[4] = 0.0
        assert compute_significance(make_experience(embedding=embedding)) == pytest.approx(0.9)

    def test_capped_at_one(self):
        exp = make_experience(
            embedding_value=0.0,
            was_successful=False,
            novelty=1.0,
            needs_delta=(1.0, 0.0, 0.0, 0.0, 0.0),
        )
        assert compute_significance(exp) == 1.0


class TestEpisodicMemoryBuffer:
    """Storage, eviction, decay and sequence export."""

    def test_empty_buffer(self):
        """An empty buffer exports zero tokens and an all-false mask."""
        memory = EpisodicMemoryBuffer()
        mask = memory.get_attention_mask()
        sequence = memory.get_memory_sequence()

        assert mask == [False] * 32
        assert len(sequence) == 32
        assert all(v == 0.0 for row in sequence for v in row)
        assert all(len(row) == 64 for row in sequence)

    def test_store_fills_slots_in_order(self, encoder):
        memory = EpisodicMemoryBuffer(capacity=4)
        memory.store(make_experience(tick=1), encoder)
        memory.store(make_experience(tick=2), encoder)

        assert memory.size == 2
        assert memory.get_attention_mask() == [True, True, False, False]
        sequence = memory.get_memory_sequence()
        assert any(v != 0.0 for v in sequence[0])
        assert sequence[2] == [0.0] * 64

    def test_evicts_lowest_significance(self, encoder):
        """One more than capacity evicts exactly the weakest entry."""
        memory = EpisodicMemoryBuffer(capacity=4)
        for tick, novelty in enumerate([0.5, 0.1, 0.9, 0.7]):
            memory.store(make_experience(tick=tick, novelty=novelty), encoder)

        memory.store(make_experience(tick=10, novelty=0.6), encoder)

        assert memory.size == 4
        ticks = sorted(entry.tick for entry in memory.entries())
        assert ticks == [0, 2, 3, 10]

    def test_decay_reduces_fresh_entry(self, encoder):
        memory = EpisodicMemoryBuffer()
        entry = memory.store(make_experience(), encoder)
        before = entry.significance

        memory.decay_memories()

        assert entry.significance < before
        assert entry.significance == pytest.approx(before - 0.0005)

    def test_significant_entries_decay_at_half_rate(self, encoder):
        memory = EpisodicMemoryBuffer()
        entry = memory.store(make_experience(embedding_value=0.0), encoder)
        assert entry.significance == pytest.approx(0.9)

        memory.decay_memories(0.01)
        assert entry.significance == pytest.approx(0.9 - 0.005)

    def test_exhausted_entries_removed(self, encoder):
        memory = EpisodicMemoryBuffer()
        memory.store(make_experience(tick=1), encoder)
        memory.store(make_experience(tick=2, embedding_value=0.0), encoder)

        removed = memory.decay_memories(0.3)

        assert removed == 1
        assert [e.tick for e in memory.entries()] == [2]

    def test_stats_and_clear(self, encoder):
        memory = EpisodicMemoryBuffer(capacity=8)
        memory.store(make_experience(embedding_value=0.0), encoder)
        memory.store(make_experience(), encoder)

        stats = memory.stats()
        assert stats["size"] == 2
        assert stats["high_significance_count"] == 1

        memory.clear()
        assert len(memory) == 0
        assert memory.stats()["avg_significance"] == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
