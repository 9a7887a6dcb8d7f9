"""
Training objective.

    total = cross_entropy(action) + 0.3 * MSE(outcome) + 0.1 * valence_reg

The outcome term only applies when a predicted outcome is supplied.
"""
from __future__ import annotations

import math
from typing import Optional, Sequence

LOG_EPSILON = 1e-8
OUTCOME_WEIGHT = 0.3
EMOTION_WEIGHT = 0.1


class NeuralNetLoss:
    """Stateless loss terms over plain float sequences."""

    def action_loss(self, predicted: Sequence[float], target: int) -> float:
        """Cross-entropy of the target action, guarded against log(0)."""
        return -math.log(predicted[target] + LOG_EPSILON)

    def outcome_loss(self, predicted: Sequence[float], actual: Sequence[float]) -> float:
        if len(predicted) != len(actual):
            raise ValueError(f"outcome lengths differ: {len(predicted)} vs {len(actual)}")
        if not predicted:
            return 0.0
        return sum((p - a) ** 2 for p, a in zip(predicted, actual)) / len(predicted)

    @staticmethod
    def valence_target(needs: Sequence[float]) -> float:
        """Needs in [0, 1] mapped onto valence in [-1, 1]."""
        return 2.0 * (sum(needs) / len(needs)) - 1.0

    def emotion_regularization(self, emotional_state: Sequence[float], needs: Sequence[float]) -> float:
        """Squared error between predicted valence and the needs-derived target."""
        return (emotional_state[0] - self.valence_target(needs)) ** 2

    def total(
        self,
        action_pred: Sequence[float],
        action_target: int,
        emotional_state: Sequence[float],
        needs: Sequence[float],
        outcome_pred: Optional[Sequence[float]] = None,
        outcome_actual: Optional[Sequence[float]] = None,
    ) -> float:
        loss = self.action_loss(action_pred, action_target)
        if outcome_pred is not None and outcome_actual is not None:
            loss += OUTCOME_WEIGHT * self.outcome_loss(outcome_pred, outcome_actual)
        loss += EMOTION_WEIGHT * self.emotion_regularization(emotional_state, needs)
        return loss
