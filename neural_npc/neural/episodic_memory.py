"""
Fixed-capacity episodic memory for one agent.

Each stored experience is encoded into a 64-wide memory vector and scored
with a significance in [0, 1]. Significance decays every tick; routine
memories fade out while highly significant ones persist much longer. When
the buffer is full, the least significant memory is evicted to make room.

The buffer is exposed to the decision network as a capacity-length token
sequence (zero padded) plus a parallel real-vs-padding mask.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

from ..config import ARCHITECTURE
from ..types import ActionType
from .encoders import Experience, ExperienceEncoder

logger = logging.getLogger(__name__)

BASE_SIGNIFICANCE = 0.3
MAX_NEEDS_BONUS = 0.3
NOVELTY_WEIGHT = 0.2
FAILURE_BONUS = 0.15
SOCIAL_BONUS = 0.1
CRITICAL_CHANNEL_BONUS = 0.3
CRITICAL_CHANNEL_THRESHOLD = 0.1
# Embedding channels read as hunger and safety proxies
CRITICAL_CHANNELS = (0, 4)

PERSISTENCE_THRESHOLD = 0.7
DEFAULT_DECAY_RATE = 0.0005


@dataclass
class MemoryEmbedding:
    """
    A stored memory.

    Attributes:
        vector: Encoded memory, embedding_dim wide
        significance: Retention score in [0, 1], decays every tick
        tick: Tick of the source experience
        source_experience: The experience this memory encodes
    """
    vector: List[float]
    significance: float
    tick: int
    source_experience: Experience


def compute_significance(experience: Experience) -> float:
    """
    Score how memorable an experience is.

    Baseline 0.3, plus up to 0.3 for large need changes, novelty, failures,
    social actions, and critically low hunger/safety channels. Capped at 1.0.
    """
    sig = BASE_SIGNIFICANCE
    sig += min(experience.needs_impact * 2.0, MAX_NEEDS_BONUS)
    sig += experience.novelty * NOVELTY_WEIGHT
    if not experience.was_successful:
        sig += FAILURE_BONUS
    if experience.action_taken == ActionType.SOCIALIZE.index:
        sig += SOCIAL_BONUS
    for channel in CRITICAL_CHANNELS:
        if experience.perception_embedding[channel] < CRITICAL_CHANNEL_THRESHOLD:
            sig += CRITICAL_CHANNEL_BONUS
    return min(sig, 1.0)


class EpisodicMemoryBuffer:
    """
    Significance-weighted memory store.

    Example:
        >>> memory = EpisodicMemoryBuffer(capacity=32)
        >>> memory.store(experience, encoder)
        >>> tokens, mask = memory.get_memory_sequence(), memory.get_attention_mask()
    """

    def __init__(self, capacity: int = 32, embedding_dim: int = ARCHITECTURE.embedding_dim):
        self.capacity = capacity
        self.embedding_dim = embedding_dim
        self._buffer: List[MemoryEmbedding] = []

    def store(self, experience: Experience, encoder: ExperienceEncoder) -> MemoryEmbedding:
        """
        Encode and insert an experience, evicting the weakest memory if full.

        Returns:
            The new memory entry
        """
        entry = MemoryEmbedding(
            vector=encoder.encode(experience),
            significance=compute_significance(experience),
            tick=experience.tick,
            source_experience=experience,
        )

        if len(self._buffer) >= self.capacity:
            weakest = min(range(len(self._buffer)), key=lambda i: self._buffer[i].significance)
            evicted = self._buffer.pop(weakest)
            logger.debug(
                f"Evicted memory from tick {evicted.tick} "
                f"(significance {evicted.significance:.3f})"
            )

        self._buffer.append(entry)
        return entry

    def decay_memories(self, decay_rate: float = DEFAULT_DECAY_RATE) -> int:
        """
        Age every memory by one tick.

        Memories still above 0.7 after decaying regain half the rate, so they
        fade at half speed. Memories at or below zero are dropped.

        Returns:
            Number of memories removed
        """
        for mem in self._buffer:
            mem.significance -= decay_rate
            if mem.significance > PERSISTENCE_THRESHOLD:
                mem.significance += decay_rate * 0.5

        before = len(self._buffer)
        self._buffer = [mem for mem in self._buffer if mem.significance > 0]
        return before - len(self._buffer)

    def get_memory_sequence(self) -> List[List[float]]:
        """Capacity-length list of vectors, zero vectors past the fill level."""
        sequence = [list(mem.vector) for mem in self._buffer]
        padding = self.capacity - len(sequence)
        sequence.extend([0.0] * self.embedding_dim for _ in range(padding))
        return sequence

    def get_attention_mask(self) -> List[bool]:
        """True for real memory slots, False for padding."""
        return [i < len(self._buffer) for i in range(self.capacity)]

    @property
    def size(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def entries(self) -> List[MemoryEmbedding]:
        """Snapshot of current entries (oldest first)."""
        return list(self._buffer)

    def clear(self) -> None:
        self._buffer = []

    def stats(self) -> Dict:
        """Get memory statistics."""
        if not self._buffer:
            return {
                "size": 0,
                "capacity": self.capacity,
                "avg_significance": 0.0,
                "high_significance_count": 0,
            }

        sigs = [mem.significance for mem in self._buffer]
        return {
            "size": len(self._buffer),
            "capacity": self.capacity,
            "avg_significance": round(sum(sigs) / len(sigs), 4),
            "high_significance_count": sum(1 for s in sigs if s > PERSISTENCE_THRESHOLD),
        }
