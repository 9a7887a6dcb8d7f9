"""
Neural NPC: transformer-driven decision making for simulated agents.

Example:
    >>> from neural_npc import NeuralNetBrain, BrainPresets
    >>> brain = NeuralNetBrain(BrainPresets.deterministic_test(), agent_id="npc_1")
    >>> action = brain.decide(perception)
"""

from .config import (
    ARCHITECTURE,
    ArchitectureConfig,
    BrainConfig,
    BrainPresets,
    MemoryConfig,
    OnlineTrainingConfig,
    TrainingConfig,
)
from .neural import NeuralNetBrain, WeightFormatError
from .persistence import WeightStore
from .types import Action, ActionType, Brain, Needs, Perception

__version__ = "0.1.0"

__all__ = [
    "NeuralNetBrain",
    "Brain",
    "Action",
    "ActionType",
    "Needs",
    "Perception",
    "ARCHITECTURE",
    "ArchitectureConfig",
    "BrainConfig",
    "BrainPresets",
    "MemoryConfig",
    "OnlineTrainingConfig",
    "TrainingConfig",
    "WeightStore",
    "WeightFormatError",
]
