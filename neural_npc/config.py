"""
Configuration for the neural decision engine.

Architecture constants are fixed; everything else is a bounded, clamped
dataclass with sensible defaults, loadable from JSON or YAML files.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from .util import clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchitectureConfig:
    """
    Fixed shape constants of the decision network.

    Every embedding, memory slot and attention key/value is ``embedding_dim``
    wide; the decision sequence is CLS + perception + memory slots.
    """
    embedding_dim: int = 64
    num_heads: int = 4
    ffn_hidden_dim: int = 128
    num_layers: int = 2
    num_memory_slots: int = 32
    num_actions: int = 6
    perception_input_dim: int = 30
    num_needs: int = 5
    emotion_dim: int = 3

    @property
    def head_dim(self) -> int:
        return self.embedding_dim // self.num_heads

    @property
    def sequence_length(self) -> int:
        return 2 + self.num_memory_slots

    @property
    def experience_input_dim(self) -> int:
        return self.embedding_dim + self.num_actions + self.num_needs

    def to_dict(self) -> Dict[str, int]:
        """Architecture block of the persisted weight document."""
        return {
            "embeddingDim": self.embedding_dim,
            "numHeads": self.num_heads,
            "numLayers": self.num_layers,
            "ffnHiddenDim": self.ffn_hidden_dim,
            "numActions": self.num_actions,
            "numMemorySlots": self.num_memory_slots,
            "perceptionInputDim": self.perception_input_dim,
        }


ARCHITECTURE = ArchitectureConfig()


@dataclass
class TrainingConfig:
    """
    Offline training parameters.

    Attributes:
        epochs: Maximum number of passes over the training split
        batch_size: Samples per optimizer step
        learning_rate: Initial Adam step size
        learning_rate_decay: Multiplier applied after every epoch
        max_grad_norm: L2 clip applied per parameter tensor
        validation_split: Fraction of samples held out
        early_stopping_patience: Non-improving epochs tolerated
        shuffle_data: Shuffle split and per-epoch order
        gradient_epsilon: Finite-difference step
        max_weight_samples: Weight entries perturbed per dense layer
    """
    epochs: int = 50
    batch_size: int = 32
    learning_rate: float = 0.001
    learning_rate_decay: float = 0.95
    max_grad_norm: float = 1.0
    validation_split: float = 0.2
    early_stopping_patience: int = 5
    shuffle_data: bool = True
    gradient_epsilon: float = 1e-4
    max_weight_samples: int = 64

    def __post_init__(self):
        self.epochs = max(1, self.epochs)
        self.batch_size = max(1, self.batch_size)
        self.learning_rate = clamp(self.learning_rate, 1e-8, 1.0)
        self.learning_rate_decay = clamp(self.learning_rate_decay, 0.0, 1.0)
        self.max_grad_norm = max(1e-6, self.max_grad_norm)
        self.validation_split = clamp(self.validation_split, 0.0, 0.9)
        self.early_stopping_patience = max(1, self.early_stopping_patience)
        self.gradient_epsilon = clamp(self.gradient_epsilon, 1e-8, 1e-1)
        self.max_weight_samples = max(1, self.max_weight_samples)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainingConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class OnlineTrainingConfig:
    """
    Amortized in-simulation learning.

    Attributes:
        update_interval: Ticks between update passes
        batch_size: Replay samples drawn per pass
        learning_rate: Adam step size for head updates
        max_update_time_ms: Wall-clock budget per pass
        max_grad_norm: L2 clip per parameter tensor
        apply_updates: False keeps the pass observation-only
    """
    update_interval: int = 100
    batch_size: int = 8
    learning_rate: float = 0.0001
    max_update_time_ms: float = 5.0
    max_grad_norm: float = 1.0
    apply_updates: bool = True

    def __post_init__(self):
        self.update_interval = max(1, self.update_interval)
        self.batch_size = max(1, self.batch_size)
        self.learning_rate = clamp(self.learning_rate, 0.0, 1.0)
        self.max_update_time_ms = max(0.0, self.max_update_time_ms)
        self.max_grad_norm = max(1e-6, self.max_grad_norm)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OnlineTrainingConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class MemoryConfig:
    """Capacities and decay for an agent's episodic and replay stores."""
    episodic_capacity: int = 32
    replay_capacity: int = 500
    decay_rate: float = 0.0005

    def __post_init__(self):
        self.episodic_capacity = max(1, min(ARCHITECTURE.num_memory_slots, self.episodic_capacity))
        self.replay_capacity = max(1, min(100000, self.replay_capacity))
        self.decay_rate = clamp(self.decay_rate, 0.0, 1.0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class BrainConfig:
    """
    Per-agent configuration.

    Attributes:
        temperature: Action sampling temperature (lower = greedier)
        seed: Seed for the agent's random generator (None = entropy)
        weights_dir: Directory for keyed weight storage (None = disabled)
        memory: Episodic/replay settings
        online: Online learning settings
    """
    temperature: float = 0.8
    seed: Optional[int] = None
    weights_dir: Optional[str] = None
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    online: OnlineTrainingConfig = field(default_factory=OnlineTrainingConfig)

    def __post_init__(self):
        self.temperature = clamp(self.temperature, 0.05, 5.0)
        if isinstance(self.memory, dict):
            self.memory = MemoryConfig.from_dict(self.memory)
        if isinstance(self.online, dict):
            self.online = OnlineTrainingConfig.from_dict(self.online)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "seed": self.seed,
            "weights_dir": self.weights_dir,
            "memory": self.memory.to_dict(),
            "online": self.online.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrainConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def save(self, path: str) -> None:
        """Save config to a JSON file."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> Optional["BrainConfig"]:
        """Load config from a JSON or YAML file; None if missing or invalid."""
        if not os.path.exists(path):
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()

            if path.endswith((".yaml", ".yml")):
                try:
                    import yaml
                except ImportError:
                    logger.warning("YAML support requires PyYAML: pip install pyyaml")
                    return None
                try:
                    data = yaml.safe_load(content)
                except yaml.YAMLError as e:
                    logger.warning(f"Failed to parse YAML config {path}: {e}")
                    return None
            else:
                data = json.loads(content)

            if not isinstance(data, dict):
                logger.warning(f"Config at {path} is not a mapping")
                return None
            return cls.from_dict(data)

        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return None


class BrainPresets:
    """Pre-configured agent brain settings."""

    @staticmethod
    def default() -> BrainConfig:
        return BrainConfig()

    @staticmethod
    def observation_only() -> BrainConfig:
        """Online pass computes loss but never touches parameters."""
        return BrainConfig(online=OnlineTrainingConfig(apply_updates=False))

    @staticmethod
    def fast_learner() -> BrainConfig:
        """Frequent, larger online updates (agents diverge quickly)."""
        return BrainConfig(
            online=OnlineTrainingConfig(
                update_interval=25,
                batch_size=16,
                learning_rate=0.001,
                max_update_time_ms=10.0,
            ),
        )

    @staticmethod
    def deterministic_test(seed: int = 42) -> BrainConfig:
        """Seeded configuration for testing."""
        return BrainConfig(seed=seed)
