"""
Neural decision layer for NPC agents.

A small, fixed-size transformer chooses each agent's action from its
current perception and its significance-weighted episodic memory, and
keeps learning from replayed outcomes while the agent lives.
"""

from .agent import EmotionalState, NeuralNetBrain
from .encoders import Experience, ExperienceEncoder, PerceptionEncoder
from .episodic_memory import EpisodicMemoryBuffer, MemoryEmbedding, compute_significance
from .features import encode_perception, map_action
from .loss import NeuralNetLoss
from .online_trainer import OnlineTrainer
from .optimizer import AdamOptimizer
from .personality import PersonalityTracker
from .replay_buffer import ReplayBuffer
from .serialization import TrainedOn, WeightData, WeightFormatError, WeightSerializer
from .tensor import ShapeError, Tensor
from .trainer import Trainer, TrainingReport, TrainingSample
from .transformer import BrainOutput, TransformerBrain

__all__ = [
    # Agent
    "NeuralNetBrain",
    "EmotionalState",

    # Network
    "Tensor",
    "ShapeError",
    "TransformerBrain",
    "BrainOutput",
    "PerceptionEncoder",
    "ExperienceEncoder",

    # Memory
    "Experience",
    "EpisodicMemoryBuffer",
    "MemoryEmbedding",
    "compute_significance",
    "ReplayBuffer",

    # Features
    "encode_perception",
    "map_action",

    # Training
    "NeuralNetLoss",
    "AdamOptimizer",
    "Trainer",
    "TrainingSample",
    "TrainingReport",
    "OnlineTrainer",

    # Persistence
    "WeightSerializer",
    "WeightData",
    "WeightFormatError",
    "TrainedOn",

    # Personality
    "PersonalityTracker",
]
