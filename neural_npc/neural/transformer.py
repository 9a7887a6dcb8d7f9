"""
The decision transformer.

Input sequence is ``[CLS, perception, memory_0 .. memory_31]`` (34 tokens of
64 floats). Sinusoidal positions plus a learned offset are added, two
encoder blocks run over it, and the final CLS row feeds two heads:

    action head:  Linear(64 -> 6) -> softmax
    emotion head: Linear(64 -> 3) -> tanh   (valence, arousal, dominance)

The emotion output is auxiliary: it is displayed and regularized during
training but never read when choosing an action.
"""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from ..config import ARCHITECTURE
from .attention import TransformerEncoderLayer
from .linear import LayerNorm, LinearLayer
from .tensor import ShapeError, Tensor

CLS_INIT_STD = 0.02
OFFSET_INIT_STD = 0.01


def sinusoidal_encoding(seq_len: int, dim: int) -> np.ndarray:
    """Standard sin/cos table: even channels sin, odd channels cos."""
    table = np.zeros((seq_len, dim), dtype=np.float64)
    for pos in range(seq_len):
        for i in range(dim):
            angle = pos / math.pow(10000.0, (2 * (i // 2)) / dim)
            table[pos, i] = math.sin(angle) if i % 2 == 0 else math.cos(angle)
    return table


@dataclass
class BrainOutput:
    """
    Result of one forward pass.

    Attributes:
        action_probabilities: 6-way distribution over ActionType
        emotional_state: (valence, arousal, dominance), each in [-1, 1]
        memory_attention_weights: Per block, the CLS row's weight on each memory slot
        cls_embedding: Final CLS representation read by both heads
    """
    action_probabilities: List[float]
    emotional_state: List[float]
    memory_attention_weights: List[List[float]] = field(default_factory=list)
    cls_embedding: Optional[Tensor] = None


class TransformerBrain:
    """
    Fixed-size decision network; each agent owns one instance.

    Example:
        >>> brain = TransformerBrain(rng=np.random.default_rng(7))
        >>> out = brain.forward(embedding, memory.get_memory_sequence(), memory.get_attention_mask())
        >>> out.action_probabilities
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        arch = ARCHITECTURE
        self.embedding_dim = arch.embedding_dim
        self.num_heads = arch.num_heads
        self.head_dim = arch.head_dim
        self.ffn_hidden_dim = arch.ffn_hidden_dim
        self.num_layers = arch.num_layers
        self.num_memory_slots = arch.num_memory_slots
        self.num_actions = arch.num_actions
        self.sequence_length = arch.sequence_length

        self.cls_token = Tensor.randn([self.embedding_dim], 0.0, CLS_INIT_STD, rng=rng)
        self.positional_encoding = sinusoidal_encoding(self.sequence_length, self.embedding_dim)
        self.positional_offset = Tensor.randn(
            [self.sequence_length, self.embedding_dim], 0.0, OFFSET_INIT_STD, rng=rng
        )

        self.layers = [
            TransformerEncoderLayer(self.embedding_dim, self.num_heads, self.ffn_hidden_dim, rng=rng)
            for _ in range(self.num_layers)
        ]
        self.action_head = LinearLayer(self.embedding_dim, self.num_actions, rng=rng)
        self.emotion_head = LinearLayer(self.embedding_dim, arch.emotion_dim, rng=rng)

    def _build_sequence(
        self,
        perception_embedding: Sequence[float],
        memory_sequence: Sequence[Sequence[float]],
    ) -> Tensor:
        if len(perception_embedding) != self.embedding_dim:
            raise ShapeError(
                f"perception embedding must have {self.embedding_dim} values, "
                f"got {len(perception_embedding)}"
            )
        if len(memory_sequence) > self.num_memory_slots:
            raise ShapeError(
                f"at most {self.num_memory_slots} memory tokens, got {len(memory_sequence)}"
            )

        seq = np.zeros((self.sequence_length, self.embedding_dim), dtype=np.float64)
        seq[0] = self.cls_token.data
        seq[1] = np.asarray(perception_embedding, dtype=np.float64)
        for m, vector in enumerate(memory_sequence):
            if len(vector) != self.embedding_dim:
                raise ShapeError(f"memory token {m} has {len(vector)} values, expected {self.embedding_dim}")
            seq[m + 2] = np.asarray(vector, dtype=np.float64)

        seq += self.positional_encoding
        seq += self.positional_offset.array()
        return Tensor(seq, [self.sequence_length, self.embedding_dim])

    def forward(
        self,
        perception_embedding: Sequence[float],
        memory_sequence: Sequence[Sequence[float]],
        attention_mask: Sequence[bool],
    ) -> BrainOutput:
        """
        Run one decision pass.

        Short memory sequences and masks are padded to the slot count with
        zero tokens and False flags.

        Args:
            perception_embedding: 64 floats from the perception encoder
            memory_sequence: Up to 32 memory vectors
            attention_mask: Per memory slot, True = real entry
        """
        x = self._build_sequence(perception_embedding, memory_sequence)

        memory_mask = [bool(flag) for flag in attention_mask[: self.num_memory_slots]]
        memory_mask.extend([False] * (self.num_memory_slots - len(memory_mask)))
        full_mask = [True, True, *memory_mask]

        layer_weights: List[List[float]] = []
        for layer in self.layers:
            result = layer.forward(x, full_mask)
            x = result.output
            # CLS row (0), memory columns 2..33
            layer_weights.append(result.attention_weights.array()[0, 2:].tolist())

        cls_output = x.slice(0, 0, 1).reshape([self.embedding_dim])

        action_logits = self.action_head.forward(cls_output)
        probs = Tensor.softmax(action_logits)
        emotion = Tensor.tanh(self.emotion_head.forward(cls_output))

        return BrainOutput(
            action_probabilities=probs.to_list(),
            emotional_state=emotion.to_list(),
            memory_attention_weights=layer_weights,
            cls_embedding=cls_output,
        )

    def get_all_linear_layers(self) -> List[LinearLayer]:
        """Encoder-block layers in order, then action head, then emotion head."""
        layers: List[LinearLayer] = []
        for layer in self.layers:
            layers.extend(layer.get_linear_layers())
        layers.extend([self.action_head, self.emotion_head])
        return layers

    def get_all_layer_norms(self) -> List[LayerNorm]:
        norms: List[LayerNorm] = []
        for layer in self.layers:
            norms.extend(layer.get_layer_norms())
        return norms

    def initialize_weights(self, rng: Optional[np.random.Generator] = None) -> None:
        """Xavier dense layers, identity norms, small-variance CLS and offset."""
        for layer in self.get_all_linear_layers():
            layer.reinitialize(rng)
        for norm in self.get_all_layer_norms():
            norm.reset()
        self.cls_token = Tensor.randn([self.embedding_dim], 0.0, CLS_INIT_STD, rng=rng)
        self.positional_offset = Tensor.randn(
            [self.sequence_length, self.embedding_dim], 0.0, OFFSET_INIT_STD, rng=rng
        )

    def copy(self) -> "TransformerBrain":
        """Independent deep copy of every parameter."""
        clone = copy.deepcopy(self)
        for layer in clone.get_all_linear_layers():
            layer.last_input = None
            layer.zero_grad()
        return clone

    @property
    def num_parameters(self) -> int:
        """Dense and norm parameters (CLS token and offset excluded)."""
        return sum(layer.num_parameters for layer in self.get_all_linear_layers()) + sum(
            norm.num_parameters for norm in self.get_all_layer_norms()
        )
