"""
Affine and normalization layers.

LinearLayer computes ``x @ W.T + b`` and can accumulate gradients for the
optimizer. LayerNorm holds the learnable scale/shift for a per-row
normalization.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from .tensor import ShapeError, Tensor


class LinearLayer:
    """
    Dense layer with weight ``[out, in]`` and bias ``[out]``.

    Gradients accumulate into ``weight_grad`` / ``bias_grad`` across calls to
    backward() until zero_grad() is called.
    """

    def __init__(
        self,
        input_dim: int,
        output_dim: int,
        rng: Optional[np.random.Generator] = None,
    ):
        self.input_dim = input_dim
        self.output_dim = output_dim
        std = math.sqrt(2.0 / (input_dim + output_dim))
        self.weight = Tensor.randn([output_dim, input_dim], 0.0, std, rng=rng)
        self.bias = Tensor.zeros([output_dim])
        self.weight_grad = Tensor.zeros([output_dim, input_dim])
        self.bias_grad = Tensor.zeros([output_dim])
        self.last_input: Optional[Tensor] = None

    def forward(self, x: Tensor) -> Tensor:
        """
        Apply the affine transform.

        A 1-D input of size ``in`` is treated as a single row and the result
        is returned 1-D; a 2-D input ``[N, in]`` yields ``[N, out]``.
        """
        squeezed = x.ndim == 1
        inp = x.reshape([1, x.shape[0]]) if squeezed else x
        if inp.ndim != 2 or inp.shape[1] != self.input_dim:
            raise ShapeError(f"LinearLayer expects [N, {self.input_dim}], got {x.shape}")
        self.last_input = inp

        out = inp.matmul(self.weight.transpose())
        rows = Tensor(np.tile(self.bias.data, out.shape[0]), out.shape)
        out = out.add(rows)
        return out.reshape([self.output_dim]) if squeezed else out

    def backward(self, grad_output: Tensor) -> Tensor:
        """
        Accumulate parameter gradients and return the input gradient.

        Raises:
            RuntimeError: If forward() has not been called yet
        """
        if self.last_input is None:
            raise RuntimeError("backward() called before forward()")

        squeezed = grad_output.ndim == 1
        grad = grad_output.reshape([1, grad_output.shape[0]]) if squeezed else grad_output
        if grad.shape != (self.last_input.shape[0], self.output_dim):
            raise ShapeError(
                f"grad shape {grad_output.shape} does not match last output "
                f"[{self.last_input.shape[0]}, {self.output_dim}]"
            )

        # dW += dOut^T . x, dB += colsum(dOut)
        self.weight_grad.data += grad.transpose().matmul(self.last_input).data
        self.bias_grad.data += grad.array().sum(axis=0)

        grad_input = grad.matmul(self.weight)
        return grad_input.reshape([self.input_dim]) if squeezed else grad_input

    def zero_grad(self) -> None:
        self.weight_grad = Tensor.zeros(self.weight.shape)
        self.bias_grad = Tensor.zeros(self.bias.shape)

    def reinitialize(self, rng: Optional[np.random.Generator] = None) -> None:
        """Xavier/Glorot weights and zero bias."""
        std = math.sqrt(2.0 / (self.input_dim + self.output_dim))
        self.weight = Tensor.randn(self.weight.shape, 0.0, std, rng=rng)
        self.bias = Tensor.zeros(self.bias.shape)

    @property
    def num_parameters(self) -> int:
        return self.weight.size + self.bias.size


@dataclass
class LayerNorm:
    """Learnable per-feature scale (gamma) and shift (beta)."""
    dim: int
    eps: float = 1e-5
    gamma: Tensor = field(init=False)
    beta: Tensor = field(init=False)

    def __post_init__(self):
        self.gamma = Tensor.ones([self.dim])
        self.beta = Tensor.zeros([self.dim])

    def forward(self, x: Tensor) -> Tensor:
        return Tensor.layer_norm(x, self.gamma, self.beta, self.eps)

    def reset(self) -> None:
        """Identity scale, zero shift."""
        self.gamma.data[:] = 1.0
        self.beta.data[:] = 0.0

    def params(self) -> Dict[str, Tensor]:
        return {"gamma": self.gamma, "beta": self.beta}

    @property
    def num_parameters(self) -> int:
        return self.gamma.size + self.beta.size
