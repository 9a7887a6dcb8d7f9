from __future__ import annotations

from typing import Sequence

import numpy as np


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def argmax(values: Sequence[float]) -> int:
    """Index of the first maximum."""
    best = 0
    for i in range(1, len(values)):
        if values[i] > values[best]:
            best = i
    return best


def clip_norm_(grad: np.ndarray, max_norm: float) -> np.ndarray:
    """Scale ``grad`` in place so its L2 norm is at most ``max_norm``."""
    norm = float(np.sqrt(np.sum(grad * grad)))
    if norm > max_norm:
        grad *= max_norm / norm
    return grad
