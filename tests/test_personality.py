"""
Tests for personality classification and parameter divergence.
"""
import numpy as np
import pytest

from neural_npc.neural.personality import PersonalityTracker, parameter_divergence
from neural_npc.neural.transformer import TransformerBrain
from neural_npc.types import ActionType


def tracker_with(counts):
    tracker = PersonalityTracker()
    for action, n in counts.items():
        for _ in range(n):
            tracker.record_action(action.index)
    return tracker


class TestClassification:
    def test_empty_is_balanced(self):
        tracker = PersonalityTracker()
        assert tracker.classify_personality() == "balanced"
        assert all(v == 0.0 for v in tracker.get_action_distribution().values())

    @pytest.mark.parametrize("counts,label", [
        ({ActionType.FORAGE: 5, ActionType.REST: 5}, "survivalist"),
        ({ActionType.EXPLORE: 4, ActionType.REST: 6}, "explorer"),
        ({ActionType.SEEK_SHELTER: 3, ActionType.REST: 7}, "cautious"),
        ({ActionType.SOCIALIZE: 3, ActionType.REST: 7}, "social"),
        ({ActionType.REST: 5, ActionType.IDLE: 5}, "balanced"),
    ])
    def test_rules(self, counts, label):
        assert tracker_with(counts).classify_personality() == label

    def test_rule_order(self):
        """FORAGE is checked before EXPLORE."""
        tracker = tracker_with({ActionType.FORAGE: 5, ActionType.EXPLORE: 5})
        assert tracker.classify_personality() == "survivalist"

    def test_thresholds_are_strict(self):
        tracker = tracker_with({ActionType.FORAGE: 4, ActionType.REST: 6})
        assert tracker.classify_personality() == "balanced"

    def test_history_is_bounded(self):
        tracker = PersonalityTracker(max_history=10)
        for _ in range(10):
            tracker.record_action(ActionType.FORAGE.index)
        for _ in range(10):
            tracker.record_action(ActionType.REST.index)
        assert len(tracker) == 10
        assert tracker.get_action_distribution()["REST"] == 1.0

    def test_clear(self):
        tracker = tracker_with({ActionType.FORAGE: 3})
        tracker.clear()
        assert len(tracker) == 0


class TestDivergence:
    def test_identical_brains(self):
        brain = TransformerBrain(rng=np.random.default_rng(0))
        assert parameter_divergence(brain, brain.copy()) == 0.0

    def test_single_bias_shift(self):
        """A shift of d in one parameter moves the mean by d / total count."""
        brain = TransformerBrain(rng=np.random.default_rng(0))
        other = brain.copy()
        other.action_head.bias.data[0] += 2.0

        count = sum(layer.weight.size + layer.bias.size for layer in brain.get_all_linear_layers())
        assert parameter_divergence(brain, other) == pytest.approx(2.0 / count)

    def test_symmetric(self):
        a = TransformerBrain(rng=np.random.default_rng(1))
        b = TransformerBrain(rng=np.random.default_rng(2))
        tracker = PersonalityTracker()
        assert tracker.inter_agent_divergence(a, b) == pytest.approx(tracker.inter_agent_divergence(b, a))
        assert tracker.divergence_from_base(a, b) > 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
