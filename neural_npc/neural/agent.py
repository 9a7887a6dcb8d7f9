"""
NeuralNetBrain: the per-agent decision loop.

Each tick:
1. Encode the perception (30 floats -> 64-wide embedding)
2. Run the decision transformer over [CLS, perception, episodic memories]
3. Sample an action with temperature and bind it to a concrete target
4. Turn the previous tick's (perception, action, outcome) into an
   Experience and store it in episodic memory and the replay buffer
5. Every ``update_interval`` ticks, run a time-boxed online update
6. Decay memories and record the action for personality tracking

Every agent owns its parameters outright; nothing is shared between
instances, so online learning lets agents drift apart independently.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np

from ..config import BrainConfig
from ..metrics import DecisionProfiler, PerformanceReport
from ..persistence import Seed, WeightStore
from ..types import Action, ActionType, Perception
from .encoders import Experience, ExperienceEncoder, PerceptionEncoder
from .episodic_memory import EpisodicMemoryBuffer
from .features import encode_perception, map_action, needs_delta, novelty, sample_action, was_successful
from .online_trainer import OnlineTrainer
from .personality import PersonalityTracker
from .replay_buffer import ReplayBuffer
from .serialization import TrainedOn, WeightSerializer
from .transformer import TransformerBrain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmotionalState:
    """Auxiliary head output; display only, never a decision input."""
    valence: float = 0.0
    arousal: float = 0.0
    dominance: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"valence": self.valence, "arousal": self.arousal, "dominance": self.dominance}


class NeuralNetBrain:
    """
    Transformer-backed brain satisfying the Brain protocol.

    Example:
        >>> brain = NeuralNetBrain(BrainPresets.deterministic_test(), agent_id="npc_1")
        >>> action = brain.decide(perception)
        >>> brain.get_personality_type()
    """

    def __init__(
        self,
        config: Optional[BrainConfig] = None,
        weights: Optional[Union[str, Mapping[str, Any]]] = None,
        agent_id: Optional[str] = None,
    ):
        self.config = config or BrainConfig()
        self.agent_id = agent_id
        self.rng = np.random.default_rng(self.config.seed)

        self.perception_encoder = PerceptionEncoder(rng=self.rng)
        self.experience_encoder = ExperienceEncoder(rng=self.rng)
        self.transformer = TransformerBrain(rng=self.rng)
        self.transformer.initialize_weights(self.rng)

        self.memory = EpisodicMemoryBuffer(capacity=self.config.memory.episodic_capacity)
        self.replay_buffer = ReplayBuffer(capacity=self.config.memory.replay_capacity, rng=self.rng)
        self.online_trainer = OnlineTrainer(self.config.online)
        self.personality = PersonalityTracker()
        self.profiler = DecisionProfiler()

        store = WeightStore(self.config.weights_dir) if self.config.weights_dir else None
        self.serializer = WeightSerializer(store)

        if weights is not None:
            self.serializer.deserialize(weights, self.transformer, self.perception_encoder, self.experience_encoder)

        # Reference point for divergence: the weights this agent started from
        self._base_brain = self.transformer.copy()

        self._last_perception: Optional[Perception] = None
        self._last_action: Optional[Action] = None
        self._last_embedding: Optional[List[float]] = None
        self._last_action_index = ActionType.IDLE.index
        self._emotional_state: List[float] = [0.0, 0.0, 0.0]
        self._last_attention_weights: List[List[float]] = []
        self.ticks = 0

    @classmethod
    def from_weights(
        cls,
        weights: Union[str, Mapping[str, Any]],
        config: Optional[BrainConfig] = None,
        agent_id: Optional[str] = None,
    ) -> "NeuralNetBrain":
        """
        New agent with its own copy of a shared baseline document.

        Raises:
            WeightFormatError: If the document is malformed
        """
        return cls(config=config, weights=weights, agent_id=agent_id)

    def _log_extra(self, **fields) -> Dict[str, Any]:
        return {"subsystem": "agent", "agent_id": self.agent_id, "tick": self.ticks, **fields}

    def decide(self, perception: Perception) -> Action:
        start = self.profiler.start()

        embedding = self.perception_encoder.encode(encode_perception(perception))
        out = self.transformer.forward(
            embedding,
            self.memory.get_memory_sequence(),
            self.memory.get_attention_mask(),
        )
        self._emotional_state = out.emotional_state
        self._last_attention_weights = out.memory_attention_weights

        action_index = sample_action(out.action_probabilities, self.config.temperature, self.rng)
        action = map_action(action_index, perception)

        if self._last_perception is not None and self._last_action is not None:
            experience = self._build_experience(perception)
            self.memory.store(experience, self.experience_encoder)
            self.replay_buffer.add(experience)

        if self.online_trainer.should_update(self.ticks + 1):
            self._run_online_update()

        self.memory.decay_memories(self.config.memory.decay_rate)
        self.personality.record_action(action_index)

        self._last_perception = perception
        self._last_action = action
        self._last_embedding = embedding
        self._last_action_index = action_index
        self.ticks += 1

        latency_ms = self.profiler.record_decision(start)
        logger.debug(
            f"Chose {action.type.value} (p={out.action_probabilities[action_index]:.3f})",
            extra=self._log_extra(event_type="decision", latency_ms=latency_ms),
        )
        return action

    def _build_experience(self, current: Perception) -> Experience:
        delta = needs_delta(self._last_perception.needs, current.needs)
        return Experience(
            perception_embedding=tuple(self._last_embedding),
            action_taken=self._last_action.type.index,
            needs_delta=delta,
            tick=current.current_tick,
            was_successful=was_successful(self._last_action.type, delta),
            novelty=novelty(delta),
        )

    def _run_online_update(self) -> None:
        t0 = time.perf_counter()
        loss = self.online_trainer.update(self.transformer, self.replay_buffer)
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        if loss is None:
            return
        self.profiler.record_online_update(elapsed_ms, loss)
        logger.debug(
            f"Online update loss={loss:.4f}",
            extra=self._log_extra(event_type="online_update", latency_ms=elapsed_ms),
        )

    # --- Introspection ---

    def get_emotional_state(self) -> EmotionalState:
        valence, arousal, dominance = self._emotional_state
        return EmotionalState(valence, arousal, dominance)

    def get_memory_attention_weights(self) -> List[List[float]]:
        """Per encoder block, how strongly the CLS token attended each memory slot."""
        return [list(row) for row in self._last_attention_weights]

    def get_personality_type(self) -> str:
        return self.personality.classify_personality()

    def get_action_distribution(self) -> Dict[str, float]:
        return self.personality.get_action_distribution()

    def get_divergence_from_base(self) -> float:
        """Mean absolute weight drift since this agent was created or last loaded."""
        return self.personality.divergence_from_base(self.transformer, self._base_brain)

    def divergence_from(self, other: "NeuralNetBrain") -> float:
        """Read-only comparison; call between ticks, never during decide()."""
        return self.personality.inter_agent_divergence(self.transformer, other.transformer)

    def get_performance_report(self) -> PerformanceReport:
        return self.profiler.report()

    def stats(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "ticks": self.ticks,
            "memory": self.memory.stats(),
            "replay_size": self.replay_buffer.size,
            "online_updates": self.online_trainer.updates_applied,
            "personality": self.get_personality_type(),
            "emotion": self.get_emotional_state().to_dict(),
        }

    # --- Persistence ---

    def export_weights(self) -> str:
        return self.serializer.export_weights(self.transformer, self.perception_encoder, self.experience_encoder)

    def save_weights(self, world_seed: Seed, trained_on: Optional[TrainedOn] = None) -> bool:
        """Persist this agent's weights under the world seed; False on failure."""
        saved = self.serializer.save_to_storage(
            world_seed, self.transformer, self.perception_encoder, self.experience_encoder, trained_on
        )
        if not saved:
            logger.warning(f"Weights for world {world_seed} not saved", extra=self._log_extra())
        return saved

    def load_weights(self, world_seed: Seed) -> bool:
        """
        Replace this agent's weights with the stored document for a world.

        Returns False (weights untouched) when nothing valid is stored.
        """
        loaded = self.serializer.load_from_storage(
            world_seed, self.transformer, self.perception_encoder, self.experience_encoder
        )
        if loaded:
            self._base_brain = self.transformer.copy()
            self.online_trainer.reset()
        return loaded
