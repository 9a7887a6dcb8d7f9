"""
Multi-head self-attention and the pre-norm transformer encoder block.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .linear import LayerNorm, LinearLayer
from .tensor import ShapeError, Tensor

MASKED_SCORE = -1e9


@dataclass
class AttentionResult:
    """Attention output plus the head-averaged weight matrix [seq, seq]."""
    output: Tensor
    weights: Tensor


class MultiHeadAttention:
    """
    Scaled dot-product attention split over ``num_heads`` contiguous slices.

    Masked key columns get a score of -1e9 before the softmax, so their
    post-softmax weight is effectively zero.
    """

    def __init__(
        self,
        emb_dim: int = 64,
        num_heads: int = 4,
        rng: Optional[np.random.Generator] = None,
    ):
        if emb_dim % num_heads != 0:
            raise ShapeError(f"emb_dim {emb_dim} not divisible by num_heads {num_heads}")
        self.emb_dim = emb_dim
        self.num_heads = num_heads
        self.head_dim = emb_dim // num_heads

        self.query_proj = LinearLayer(emb_dim, emb_dim, rng=rng)
        self.key_proj = LinearLayer(emb_dim, emb_dim, rng=rng)
        self.value_proj = LinearLayer(emb_dim, emb_dim, rng=rng)
        self.output_proj = LinearLayer(emb_dim, emb_dim, rng=rng)

    def forward(self, x: Tensor, mask: Optional[Sequence[bool]] = None) -> AttentionResult:
        """
        Args:
            x: Token sequence [seq_len, emb_dim]
            mask: Optional per-key flags, True = attendable

        Returns:
            AttentionResult with output [seq_len, emb_dim] and averaged weights
        """
        if x.ndim != 2 or x.shape[1] != self.emb_dim:
            raise ShapeError(f"attention expects [seq, {self.emb_dim}], got {x.shape}")
        seq_len = x.shape[0]
        scale = 1.0 / math.sqrt(self.head_dim)

        q = self.query_proj.forward(x)
        k = self.key_proj.forward(x)
        v = self.value_proj.forward(x)

        context: Optional[Tensor] = None
        weight_sum = Tensor.zeros([seq_len, seq_len])
        for h in range(self.num_heads):
            start, end = h * self.head_dim, (h + 1) * self.head_dim
            qh = q.slice(1, start, end)
            kh = k.slice(1, start, end)
            vh = v.slice(1, start, end)

            scores = qh.matmul(kh.transpose()).scale(scale)
            if mask is not None:
                scores = scores.mask_columns(mask, MASKED_SCORE)
            weights = Tensor.softmax(scores, dim=-1)
            weight_sum = weight_sum.add(weights)

            head_out = weights.matmul(vh)
            context = head_out if context is None else context.concat(head_out, 1)

        output = self.output_proj.forward(context)
        return AttentionResult(output=output, weights=weight_sum.scale(1.0 / self.num_heads))

    def get_linear_layers(self) -> List[LinearLayer]:
        return [self.query_proj, self.key_proj, self.value_proj, self.output_proj]


@dataclass
class EncoderResult:
    output: Tensor
    attention_weights: Tensor


class TransformerEncoderLayer:
    """
    Pre-norm residual block:

        x' = x + Attention(LayerNorm(x))
        out = x' + FFN(LayerNorm(x'))

    with FFN = Linear(emb -> hidden) -> GELU -> Linear(hidden -> emb).
    """

    def __init__(
        self,
        emb_dim: int = 64,
        num_heads: int = 4,
        ffn_hidden_dim: int = 128,
        rng: Optional[np.random.Generator] = None,
    ):
        self.attention = MultiHeadAttention(emb_dim, num_heads, rng=rng)
        self.ffn_up = LinearLayer(emb_dim, ffn_hidden_dim, rng=rng)
        self.ffn_down = LinearLayer(ffn_hidden_dim, emb_dim, rng=rng)
        self.ln1 = LayerNorm(emb_dim)
        self.ln2 = LayerNorm(emb_dim)

    def forward(self, x: Tensor, mask: Optional[Sequence[bool]] = None) -> EncoderResult:
        attn = self.attention.forward(self.ln1.forward(x), mask)
        residual = x.add(attn.output)

        hidden = Tensor.gelu(self.ffn_up.forward(self.ln2.forward(residual)))
        output = residual.add(self.ffn_down.forward(hidden))
        return EncoderResult(output=output, attention_weights=attn.weights)

    def get_linear_layers(self) -> List[LinearLayer]:
        return [*self.attention.get_linear_layers(), self.ffn_up, self.ffn_down]

    def get_layer_norms(self) -> List[LayerNorm]:
        return [self.ln1, self.ln2]
