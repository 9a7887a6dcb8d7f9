"""
Perception and experience encoders.

Both are two-layer stacks ``Linear -> LayerNorm -> GELU`` (twice) that
project raw feature vectors into the shared 64-wide embedding space.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config import ARCHITECTURE
from .linear import LayerNorm, LinearLayer
from .tensor import ShapeError, Tensor


@dataclass(frozen=True)
class Experience:
    """
    One recorded (perception, action, outcome) step spanning two ticks.

    Attributes:
        perception_embedding: 64-wide embedding of the earlier perception
        action_taken: Index of the action chosen on that tick
        needs_delta: Change in the five needs between the two ticks
        tick: Tick at which the outcome was observed
        was_successful: Whether the action improved its target need
        novelty: Surprise score in [0, 1]
    """
    perception_embedding: Tuple[float, ...]
    action_taken: int
    needs_delta: Tuple[float, ...]
    tick: int
    was_successful: bool
    novelty: float

    def __post_init__(self):
        object.__setattr__(self, "perception_embedding", tuple(float(v) for v in self.perception_embedding))
        object.__setattr__(self, "needs_delta", tuple(float(v) for v in self.needs_delta))
        if len(self.perception_embedding) != ARCHITECTURE.embedding_dim:
            raise ShapeError(
                f"perception_embedding must have {ARCHITECTURE.embedding_dim} values, "
                f"got {len(self.perception_embedding)}"
            )
        if len(self.needs_delta) != ARCHITECTURE.num_needs:
            raise ShapeError(
                f"needs_delta must have {ARCHITECTURE.num_needs} values, got {len(self.needs_delta)}"
            )
        if not 0 <= self.action_taken < ARCHITECTURE.num_actions:
            raise ValueError(f"action_taken {self.action_taken} outside 0..{ARCHITECTURE.num_actions - 1}")

    @property
    def needs_impact(self) -> float:
        """Sum of absolute need changes."""
        return sum(abs(d) for d in self.needs_delta)


class _TwoLayerEncoder:
    """Linear -> LayerNorm -> GELU -> Linear -> LayerNorm -> GELU."""

    def __init__(
        self,
        input_dim: int,
        output_dim: int = ARCHITECTURE.embedding_dim,
        rng: Optional[np.random.Generator] = None,
    ):
        self.input_dim = input_dim
        self.output_dim = output_dim
        self.linear1 = LinearLayer(input_dim, output_dim, rng=rng)
        self.ln1 = LayerNorm(output_dim)
        self.linear2 = LinearLayer(output_dim, output_dim, rng=rng)
        self.ln2 = LayerNorm(output_dim)

    def forward(self, x: Tensor) -> Tensor:
        x = Tensor.gelu(self.ln1.forward(self.linear1.forward(x)))
        return Tensor.gelu(self.ln2.forward(self.linear2.forward(x)))

    def _encode_vector(self, values: Sequence[float]) -> List[float]:
        if len(values) != self.input_dim:
            raise ShapeError(f"{type(self).__name__} expects {self.input_dim} values, got {len(values)}")
        return self.forward(Tensor(values, [self.input_dim])).to_list()

    def get_linear_layers(self) -> List[LinearLayer]:
        return [self.linear1, self.linear2]

    def get_layer_norms(self) -> List[LayerNorm]:
        return [self.ln1, self.ln2]

    @property
    def num_parameters(self) -> int:
        return sum(layer.num_parameters for layer in self.get_linear_layers()) + sum(
            ln.num_parameters for ln in self.get_layer_norms()
        )


class PerceptionEncoder(_TwoLayerEncoder):
    """Maps the 30-float sensory vector to a 64-wide embedding."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        super().__init__(ARCHITECTURE.perception_input_dim, rng=rng)

    def encode(self, perception_vector: Sequence[float]) -> List[float]:
        return self._encode_vector(perception_vector)


class ExperienceEncoder(_TwoLayerEncoder):
    """Maps embedding + one-hot action + need deltas (75 floats) to a memory vector."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        super().__init__(ARCHITECTURE.experience_input_dim, rng=rng)

    @staticmethod
    def build_input(experience: Experience) -> List[float]:
        one_hot = [0.0] * ARCHITECTURE.num_actions
        one_hot[experience.action_taken] = 1.0
        return [*experience.perception_embedding, *one_hot, *experience.needs_delta]

    def encode(self, experience: Experience) -> List[float]:
        return self._encode_vector(self.build_input(experience))
