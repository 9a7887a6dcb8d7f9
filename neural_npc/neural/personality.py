"""
Behavioral personality bookkeeping.

Tracks which actions an agent actually takes and measures how far its
decision network has drifted from a reference copy.
"""
from __future__ import annotations

from collections import deque
from typing import Deque, Dict

import numpy as np

from ..types import ACTION_TYPES, ActionType
from .transformer import TransformerBrain

SURVIVALIST = "survivalist"
EXPLORER = "explorer"
CAUTIOUS = "cautious"
SOCIAL = "social"
BALANCED = "balanced"

# (action, share threshold, label), checked in order
PERSONALITY_RULES = (
    (ActionType.FORAGE, 0.4, SURVIVALIST),
    (ActionType.EXPLORE, 0.3, EXPLORER),
    (ActionType.SEEK_SHELTER, 0.25, CAUTIOUS),
    (ActionType.SOCIALIZE, 0.25, SOCIAL),
)


def parameter_divergence(brain_a: TransformerBrain, brain_b: TransformerBrain) -> float:
    """Mean absolute difference over every dense-layer weight and bias."""
    total = 0.0
    count = 0
    for layer_a, layer_b in zip(brain_a.get_all_linear_layers(), brain_b.get_all_linear_layers()):
        total += float(np.abs(layer_a.weight.data - layer_b.weight.data).sum())
        total += float(np.abs(layer_a.bias.data - layer_b.bias.data).sum())
        count += layer_a.weight.size + layer_a.bias.size
    return total / count if count else 0.0


class PersonalityTracker:
    """
    Bounded action history with a rule-based personality label.

    Example:
        >>> tracker = PersonalityTracker()
        >>> tracker.record_action(ActionType.FORAGE.index)
        >>> tracker.classify_personality()
        'survivalist'
    """

    def __init__(self, max_history: int = 1000):
        self.max_history = max_history
        self._history: Deque[int] = deque(maxlen=max_history)

    def record_action(self, action_index: int) -> None:
        self._history.append(action_index)

    def __len__(self) -> int:
        return len(self._history)

    def get_action_distribution(self) -> Dict[str, float]:
        """Share of each action in the history (all zeros when empty)."""
        counts = {action.value: 0 for action in ACTION_TYPES}
        for idx in self._history:
            counts[ActionType.from_index(idx).value] += 1
        total = len(self._history)
        return {name: (count / total if total else 0.0) for name, count in counts.items()}

    def classify_personality(self) -> str:
        if not self._history:
            return BALANCED
        dist = self.get_action_distribution()
        for action, threshold, label in PERSONALITY_RULES:
            if dist[action.value] > threshold:
                return label
        return BALANCED

    def divergence_from_base(self, brain: TransformerBrain, base_brain: TransformerBrain) -> float:
        return parameter_divergence(brain, base_brain)

    def inter_agent_divergence(self, brain_a: TransformerBrain, brain_b: TransformerBrain) -> float:
        return parameter_divergence(brain_a, brain_b)

    def clear(self) -> None:
        self._history.clear()
