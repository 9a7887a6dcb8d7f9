"""
FIFO replay buffer with priority sampling.

Experiences are weighted by how much they moved the agent's needs plus
their novelty, so eventful ticks are replayed more often than quiet ones.
"""
from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

import numpy as np

from .encoders import Experience


def priority(experience: Experience) -> float:
    return experience.needs_impact + experience.novelty


class ReplayBuffer:
    """
    Bounded experience store; the oldest entry is dropped on overflow.

    Attributes:
        capacity: Maximum number of stored experiences
    """

    def __init__(self, capacity: int = 500, rng: Optional[np.random.Generator] = None):
        self.capacity = capacity
        self.rng = rng if rng is not None else np.random.default_rng()
        self._buffer: Deque[Experience] = deque(maxlen=capacity)

    def add(self, experience: Experience) -> None:
        self._buffer.append(experience)

    def sample(self, batch_size: int) -> List[Experience]:
        """
        Draw up to ``batch_size`` distinct experiences by priority.

        Each draw is a weighted pick over all entries. If it lands on an
        entry already chosen, the first unused entry is taken instead, so the
        call always terminates and never repeats a slot.
        """
        n = len(self._buffer)
        if n == 0 or batch_size <= 0:
            return []
        count = min(batch_size, n)

        entries = list(self._buffer)
        weights = np.array([priority(exp) for exp in entries], dtype=np.float64)
        total = float(weights.sum())
        if total <= 0:
            weights = np.ones(n, dtype=np.float64)
            total = float(n)
        cumulative = np.cumsum(weights)

        used = set()
        sampled: List[Experience] = []
        for _ in range(count):
            r = self.rng.random() * total
            idx = int(np.searchsorted(cumulative, r, side="left"))
            idx = min(idx, n - 1)
            if idx in used:
                idx = next(i for i in range(n) if i not in used)
            used.add(idx)
            sampled.append(entries[idx])

        return sampled

    @property
    def size(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()
