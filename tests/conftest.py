"""
Shared builders for the neural NPC tests.
"""
import numpy as np
import pytest

from neural_npc.neural.encoders import Experience
from neural_npc.types import Needs, NPCInfo, ObjectInfo, Perception, TileInfo


def make_experience(
    tick: int = 0,
    action: int = 0,
    needs_delta=(0.0, 0.0, 0.0, 0.0, 0.0),
    was_successful: bool = True,
    novelty: float = 0.0,
    embedding_value: float = 0.5,
    embedding=None,
) -> Experience:
    """Experience with a flat embedding (no critical channels by default)."""
    return Experience(
        perception_embedding=embedding if embedding is not None else [embedding_value] * 64,
        action_taken=action,
        needs_delta=needs_delta,
        tick=tick,
        was_successful=was_successful,
        novelty=novelty,
    )


def make_perception(
    tick: int = 0,
    needs: Needs = None,
    objects=(),
    npcs=(),
    tiles=(),
    memories=(),
    camera=(5.0, 5.0),
    **kwargs,
) -> Perception:
    return Perception(
        needs=needs or Needs(),
        nearby_tiles=tiles,
        nearby_objects=objects,
        nearby_npcs=npcs,
        relevant_memories=memories,
        current_tick=tick,
        camera_x=camera[0],
        camera_y=camera[1],
        **kwargs,
    )


def busy_perception(tick: int = 0) -> Perception:
    """Food, shelter, a neighbour and mixed terrain around (5, 5)."""
    return make_perception(
        tick=tick,
        needs=Needs(hunger=0.3, energy=0.6, social=0.4, curiosity=0.7, safety=0.9),
        objects=[
            ObjectInfo("bush_1", "berry_bush", 6, 5),
            ObjectInfo("fire_1", "campfire", 8, 8),
        ],
        npcs=[NPCInfo("npc_2", 4, 4)],
        tiles=[TileInfo(x, y, "grass" if x < 7 else "water") for x in range(3, 9) for y in range(3, 9)],
    )


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def experience_factory():
    return make_experience


@pytest.fixture
def perception_factory():
    return make_perception
