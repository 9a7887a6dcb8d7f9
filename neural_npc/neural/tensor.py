"""
Dense n-dimensional float buffers for the decision network.

A Tensor owns a flat, contiguous float array and an integer shape. Every
operation returns a new Tensor, so logical tensors never alias each other.
The only in-place writes in the package are gradient accumulation in
LinearLayer and parameter updates done by the optimizer and trainer.

Not a general tensor library: no broadcasting, no autograd, 2-D matmul only.
"""
from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

import numpy as np

DTYPE = np.float64

_SQRT_2_OVER_PI = math.sqrt(2.0 / math.pi)


class ShapeError(ValueError):
    """Raised when operands do not have the shapes an operation requires."""
    pass


def _size_from_shape(shape: Sequence[int]) -> int:
    size = 1
    for dim in shape:
        size *= int(dim)
    return size


def _normalize_dim(dim: int, rank: int) -> int:
    d = dim + rank if dim < 0 else dim
    if not 0 <= d < rank:
        raise ShapeError(f"dim {dim} out of range for rank {rank}")
    return d


class Tensor:
    """
    Immutable-by-convention float buffer with shape metadata.

    Attributes:
        data: Flat contiguous float64 array, len(data) == prod(shape)
        shape: Tuple of dimension sizes
    """

    __slots__ = ("data", "shape")

    def __init__(self, data, shape: Optional[Sequence[int]] = None):
        arr = np.array(data, dtype=DTYPE).ravel()
        if shape is None:
            shape = (arr.size,)
        shape = tuple(int(s) for s in shape)
        if arr.size != _size_from_shape(shape):
            raise ShapeError(
                f"data has {arr.size} elements but shape {shape} needs "
                f"{_size_from_shape(shape)}"
            )
        self.data = arr
        self.shape = shape

    # --- Constructors ---

    @classmethod
    def _wrap(cls, arr: np.ndarray) -> "Tensor":
        """Build a Tensor from an ndarray, taking a private C-ordered copy."""
        t = cls.__new__(cls)
        t.data = np.array(arr, dtype=DTYPE, order="C").ravel()
        t.shape = tuple(int(s) for s in arr.shape)
        return t

    @classmethod
    def zeros(cls, shape: Sequence[int]) -> "Tensor":
        return cls._wrap(np.zeros(tuple(shape), dtype=DTYPE))

    @classmethod
    def ones(cls, shape: Sequence[int]) -> "Tensor":
        return cls._wrap(np.ones(tuple(shape), dtype=DTYPE))

    @classmethod
    def randn(
        cls,
        shape: Sequence[int],
        mean: float = 0.0,
        std: float = 1.0,
        rng: Optional[np.random.Generator] = None,
    ) -> "Tensor":
        """
        Normally distributed values via the Box-Muller transform.

        Args:
            shape: Output shape
            mean: Distribution mean
            std: Distribution standard deviation
            rng: Uniform source; a fresh unseeded generator if omitted

        Returns:
            New Tensor of the requested shape
        """
        rng = rng if rng is not None else np.random.default_rng()
        size = _size_from_shape(shape)
        pairs = (size + 1) // 2
        u1 = np.maximum(rng.random(pairs), 1e-10)
        u2 = rng.random(pairs)
        r = np.sqrt(-2.0 * np.log(u1))
        theta = 2.0 * math.pi * u2
        normals = np.empty(pairs * 2, dtype=DTYPE)
        normals[0::2] = r * np.cos(theta)
        normals[1::2] = r * np.sin(theta)
        values = mean + std * normals[:size]
        return cls._wrap(values.reshape(tuple(shape)))

    @classmethod
    def from_list(cls, values: Iterable[float], shape: Optional[Sequence[int]] = None) -> "Tensor":
        return cls(list(values), shape)

    # --- Introspection ---

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return self.data.size

    def array(self) -> np.ndarray:
        """Shaped copy of the underlying data."""
        return self.data.reshape(self.shape).copy()

    def _view(self) -> np.ndarray:
        return self.data.reshape(self.shape)

    def _require_same_shape(self, other: "Tensor", op: str) -> None:
        if self.shape != other.shape:
            raise ShapeError(f"{op}: shape {self.shape} != {other.shape}")

    # --- Element-wise operations ---

    def add(self, other: "Tensor") -> "Tensor":
        self._require_same_shape(other, "add")
        return Tensor._wrap(self._view() + other._view())

    def subtract(self, other: "Tensor") -> "Tensor":
        self._require_same_shape(other, "subtract")
        return Tensor._wrap(self._view() - other._view())

    def multiply(self, other: "Tensor") -> "Tensor":
        self._require_same_shape(other, "multiply")
        return Tensor._wrap(self._view() * other._view())

    def scale(self, scalar: float) -> "Tensor":
        return Tensor._wrap(self._view() * float(scalar))

    # --- Matrix operations ---

    def matmul(self, other: "Tensor") -> "Tensor":
        """[M, K] x [K, N] -> [M, N]."""
        if self.ndim != 2 or other.ndim != 2:
            raise ShapeError(f"matmul needs 2-D operands, got {self.shape} and {other.shape}")
        if self.shape[1] != other.shape[0]:
            raise ShapeError(f"matmul inner dims differ: {self.shape} x {other.shape}")
        return Tensor._wrap(self._view() @ other._view())

    def transpose(self) -> "Tensor":
        """Swap the last two axes. Rank < 2 returns a copy."""
        if self.ndim < 2:
            return self.clone()
        return Tensor._wrap(np.swapaxes(self._view(), -1, -2))

    # --- Shape utilities ---

    def reshape(self, shape: Sequence[int]) -> "Tensor":
        """Reshape into a copy; a single -1 dimension is inferred."""
        new_shape = [int(s) for s in shape]
        wildcards = [i for i, s in enumerate(new_shape) if s == -1]
        if len(wildcards) > 1:
            raise ShapeError("reshape allows at most one -1 dimension")
        if wildcards:
            known = _size_from_shape([s for i, s in enumerate(new_shape) if i != wildcards[0]])
            if known == 0 or self.size % known != 0:
                raise ShapeError(f"cannot infer -1 in {tuple(shape)} for size {self.size}")
            new_shape[wildcards[0]] = self.size // known
        if _size_from_shape(new_shape) != self.size:
            raise ShapeError(f"cannot reshape {self.shape} into {tuple(new_shape)}")
        return Tensor(self.data, new_shape)

    def slice(self, dim: int, start: int, end: int) -> "Tensor":
        d = _normalize_dim(dim, self.ndim)
        if not 0 <= start <= end <= self.shape[d]:
            raise ShapeError(f"slice [{start}:{end}] out of range for dim {d} of {self.shape}")
        index = [slice(None)] * self.ndim
        index[d] = slice(start, end)
        return Tensor._wrap(self._view()[tuple(index)])

    def concat(self, other: "Tensor", dim: int) -> "Tensor":
        d = _normalize_dim(dim, self.ndim)
        if other.ndim != self.ndim or any(
            a != b for i, (a, b) in enumerate(zip(self.shape, other.shape)) if i != d
        ):
            raise ShapeError(f"concat along {d}: {self.shape} vs {other.shape}")
        return Tensor._wrap(np.concatenate([self._view(), other._view()], axis=d))

    def mask_columns(self, keep: Sequence[bool], fill: float) -> "Tensor":
        """
        Copy of a 2-D tensor with unkept columns replaced by ``fill``.

        Columns past the end of ``keep`` are left untouched.
        """
        if self.ndim != 2:
            raise ShapeError(f"mask_columns needs a 2-D tensor, got {self.shape}")
        out = self.array()
        limit = min(len(keep), self.shape[1])
        drop = [j for j in range(limit) if not keep[j]]
        if drop:
            out[:, drop] = fill
        return Tensor._wrap(out)

    # --- Activations ---

    @staticmethod
    def gelu(x: "Tensor") -> "Tensor":
        """tanh approximation of GELU."""
        v = x._view()
        inner = _SQRT_2_OVER_PI * (v + 0.044715 * v ** 3)
        return Tensor._wrap(0.5 * v * (1.0 + np.tanh(inner)))

    @staticmethod
    def relu(x: "Tensor") -> "Tensor":
        return Tensor._wrap(np.maximum(x._view(), 0.0))

    @staticmethod
    def sigmoid(x: "Tensor") -> "Tensor":
        return Tensor._wrap(1.0 / (1.0 + np.exp(-x._view())))

    @staticmethod
    def tanh(x: "Tensor") -> "Tensor":
        return Tensor._wrap(np.tanh(x._view()))

    @staticmethod
    def softmax(x: "Tensor", dim: int = -1) -> "Tensor":
        """Softmax along ``dim``, stabilized by subtracting the max."""
        d = _normalize_dim(dim, x.ndim)
        v = x._view()
        shifted = np.exp(v - np.max(v, axis=d, keepdims=True))
        return Tensor._wrap(shifted / np.sum(shifted, axis=d, keepdims=True))

    @staticmethod
    def layer_norm(x: "Tensor", gamma: "Tensor", beta: "Tensor", eps: float = 1e-5) -> "Tensor":
        """Normalize over the last axis, then scale by gamma and shift by beta."""
        last = x.shape[-1]
        if gamma.shape != (last,) or beta.shape != (last,):
            raise ShapeError(
                f"layer_norm params {gamma.shape}/{beta.shape} do not match last dim {last}"
            )
        v = x._view()
        mean = v.mean(axis=-1, keepdims=True)
        var = ((v - mean) ** 2).mean(axis=-1, keepdims=True)
        normed = (v - mean) / np.sqrt(var + eps)
        return Tensor._wrap(normed * gamma.data + beta.data)

    # --- Misc ---

    def clone(self) -> "Tensor":
        return Tensor._wrap(self._view().copy())

    def to_list(self) -> List[float]:
        return self.data.tolist()

    def get(self, indices: Sequence[int]) -> float:
        return float(self._view()[tuple(indices)])

    def __repr__(self) -> str:
        return f"Tensor(shape={self.shape})"
