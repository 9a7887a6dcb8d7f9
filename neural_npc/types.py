"""
Decision contract shared by every brain implementation.

A Perception is an immutable snapshot handed in by the simulation once per
tick; an Action is the tagged result. Anything that implements ``decide``
satisfies the Brain protocol.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable


class ActionType(str, Enum):
    """Closed set of actions the network can choose, in output-index order."""
    FORAGE = "FORAGE"
    REST = "REST"
    SEEK_SHELTER = "SEEK_SHELTER"
    EXPLORE = "EXPLORE"
    SOCIALIZE = "SOCIALIZE"
    IDLE = "IDLE"

    @classmethod
    def from_index(cls, index: int) -> "ActionType":
        members = list(cls)
        if 0 <= index < len(members):
            return members[index]
        return cls.IDLE

    @property
    def index(self) -> int:
        return list(ActionType).index(self)


ACTION_TYPES: Tuple[ActionType, ...] = tuple(ActionType)
NO_TARGET = -1


@dataclass(frozen=True)
class Action:
    """
    Concrete action for the simulation to execute.

    Attributes:
        type: Action kind
        target_x: Target tile x, -1 when the action has no target
        target_y: Target tile y, -1 when the action has no target
        target_npc_id: Id of the NPC being approached (SOCIALIZE only)
    """
    type: ActionType
    target_x: float = NO_TARGET
    target_y: float = NO_TARGET
    target_npc_id: Optional[str] = None

    @property
    def has_target(self) -> bool:
        return self.target_x != NO_TARGET or self.target_y != NO_TARGET

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type.value, "targetX": self.target_x, "targetY": self.target_y}
        if self.target_npc_id is not None:
            data["targetNpcId"] = self.target_npc_id
        return data


@dataclass(frozen=True)
class Needs:
    """Internal drives, each in [0, 1] where low means urgent."""
    hunger: float = 0.5
    energy: float = 0.5
    social: float = 0.5
    curiosity: float = 0.5
    safety: float = 0.5

    def as_tuple(self) -> Tuple[float, float, float, float, float]:
        return (self.hunger, self.energy, self.social, self.curiosity, self.safety)

    def mean(self) -> float:
        return sum(self.as_tuple()) / 5.0


@dataclass(frozen=True)
class TileInfo:
    x: int
    y: int
    type: str
    walkable: bool = True


@dataclass(frozen=True)
class ObjectInfo:
    id: str
    type: str
    x: float
    y: float
    state: str = "normal"


@dataclass(frozen=True)
class NPCInfo:
    id: str
    x: float
    y: float
    dx: float = 0.0
    dy: float = 0.0
    action: str = ActionType.IDLE.value


@dataclass(frozen=True)
class MemoryInfo:
    """A remembered place, as reported by the agent's world-side memory."""
    type: str
    x: float
    y: float
    tick: int
    significance: float


@dataclass(frozen=True)
class Perception:
    """
    Everything an agent can sense on one tick.

    Collections are tuples so the snapshot cannot be mutated after creation.
    """
    needs: Needs = field(default_factory=Needs)
    nearby_tiles: Tuple[TileInfo, ...] = ()
    nearby_objects: Tuple[ObjectInfo, ...] = ()
    nearby_npcs: Tuple[NPCInfo, ...] = ()
    relevant_memories: Tuple[MemoryInfo, ...] = ()
    time_of_day: float = 0.5
    weather: str = "clear"
    season: str = "spring"
    current_tick: int = 0
    camera_x: float = 0.0
    camera_y: float = 0.0
    camera_zoom: float = 1.0

    def __post_init__(self):
        for name in ("nearby_tiles", "nearby_objects", "nearby_npcs", "relevant_memories"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@runtime_checkable
class Brain(Protocol):
    """Anything that turns a perception into an action."""

    def decide(self, perception: Perception) -> Action:
        ...
