"""
Adam with bias correction.

Parameters and gradients are passed as name -> Tensor mappings; moment
estimates are tracked per name, so the same optimizer can drive different
subsets of parameters on different steps.
"""
from __future__ import annotations

from typing import Dict, Mapping

import numpy as np

from .tensor import ShapeError, Tensor


class AdamOptimizer:
    """
    Adam optimizer updating Tensors in place.

    Attributes:
        lr: Step size (may be changed between steps for decay schedules)
        t: Number of steps taken
    """

    def __init__(
        self,
        lr: float = 0.001,
        beta1: float = 0.9,
        beta2: float = 0.999,
        eps: float = 1e-8,
    ):
        self.lr = lr
        self.beta1 = beta1
        self.beta2 = beta2
        self.eps = eps
        self.t = 0
        self._m: Dict[str, np.ndarray] = {}
        self._v: Dict[str, np.ndarray] = {}

    def step(self, parameters: Mapping[str, Tensor], gradients: Mapping[str, Tensor]) -> None:
        """
        Apply one update. Parameters without a gradient entry are skipped.
        """
        self.t += 1
        bias1 = 1.0 - self.beta1 ** self.t
        bias2 = 1.0 - self.beta2 ** self.t

        for key, param in parameters.items():
            grad = gradients.get(key)
            if grad is None:
                continue
            if grad.size != param.size:
                raise ShapeError(f"gradient for {key} has {grad.size} values, parameter has {param.size}")

            if key not in self._m:
                self._m[key] = np.zeros(param.size, dtype=np.float64)
                self._v[key] = np.zeros(param.size, dtype=np.float64)
            m = self._m[key]
            v = self._v[key]

            m *= self.beta1
            m += (1.0 - self.beta1) * grad.data
            v *= self.beta2
            v += (1.0 - self.beta2) * grad.data * grad.data

            m_hat = m / bias1
            v_hat = v / bias2
            param.data -= self.lr * m_hat / (np.sqrt(v_hat) + self.eps)

    def reset(self) -> None:
        self.t = 0
        self._m.clear()
        self._v.clear()
