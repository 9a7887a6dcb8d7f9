"""
World-facing feature code: perception -> 30 floats, index -> Action.

Vector layout:

    [0-4]   needs (hunger, energy, social, curiosity, safety)
    [5]     time of day
    [6]     weather code
    [7]     season code
    [8-11]  grass / water / stone / dirt tile fractions
    [12]    food count / 10          [13] mean food distance / 8
    [14]    NPC count / 10           [15] mean NPC distance / 8
    [16]    object count / 10        [17] shelter visible
    [18-26] top three memories as (type code, recency, significance)
    [27]    0                        [28] camera zoom / 5
    [29]    0

Counts and distances are capped at 1.0. Distances are measured from the
camera position.
"""
from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from ..config import ARCHITECTURE
from ..types import Action, ActionType, Needs, Perception

WEATHER_CODES = {"clear": 0.0, "cloudy": 0.2, "rain": 0.4, "storm": 0.6, "snow": 0.8, "fog": 1.0}
SEASON_CODES = {"spring": 0.0, "summer": 0.25, "autumn": 0.5, "winter": 0.75}
MEMORY_TYPE_CODES = {
    "found_food": 0.2,
    "danger": 0.4,
    "met_npc": 0.6,
    "found_shelter": 0.8,
    "discovered_area": 1.0,
}

GRASS_TILES = frozenset({"grass", "flower_grass", "dense_grass"})
WATER_TILES = frozenset({"water", "deep_water"})
STONE_TILES = frozenset({"stone", "cave_wall", "cave_floor"})
DIRT_TILES = frozenset({"dirt", "sand"})
SHELTER_TILES = frozenset({"stone", "cave_floor"})

FOOD_OBJECT = "berry_bush"
DEPLETED = "depleted"
SHELTER_OBJECTS = frozenset({"campfire", "cave_floor"})

MEMORY_HORIZON_TICKS = 5000.0
TOP_MEMORIES = 3

T = TypeVar("T")


def _distance(p: Perception, x: float, y: float) -> float:
    return math.hypot(x - p.camera_x, y - p.camera_y)


def _nearest(p: Perception, items: Iterable[T]) -> Optional[T]:
    """Closest item to the camera; ties keep the earlier item."""
    return min(items, key=lambda item: _distance(p, item.x, item.y), default=None)


def food_objects(p: Perception):
    return [o for o in p.nearby_objects if o.type == FOOD_OBJECT and o.state != DEPLETED]


def encode_perception(p: Perception) -> List[float]:
    """Flatten a perception into the normalized 30-float sensory vector."""
    vec = [0.0] * ARCHITECTURE.perception_input_dim

    vec[0:5] = p.needs.as_tuple()

    vec[5] = p.time_of_day
    vec[6] = WEATHER_CODES.get(p.weather, 0.0)
    vec[7] = SEASON_CODES.get(p.season, 0.0)

    total_tiles = max(len(p.nearby_tiles), 1)
    for offset, group in enumerate((GRASS_TILES, WATER_TILES, STONE_TILES, DIRT_TILES)):
        vec[8 + offset] = sum(1 for t in p.nearby_tiles if t.type in group) / total_tiles

    food = food_objects(p)
    vec[12] = min(len(food) / 10.0, 1.0)
    if food:
        vec[13] = min(sum(_distance(p, o.x, o.y) for o in food) / len(food) / 8.0, 1.0)

    vec[14] = min(len(p.nearby_npcs) / 10.0, 1.0)
    if p.nearby_npcs:
        vec[15] = min(sum(_distance(p, n.x, n.y) for n in p.nearby_npcs) / len(p.nearby_npcs) / 8.0, 1.0)

    vec[16] = min(len(p.nearby_objects) / 10.0, 1.0)
    vec[17] = 1.0 if any(o.type in SHELTER_OBJECTS for o in p.nearby_objects) else 0.0

    for i, mem in enumerate(p.relevant_memories[:TOP_MEMORIES]):
        base = 18 + i * 3
        ticks_ago = max(0, p.current_tick - mem.tick)
        vec[base] = MEMORY_TYPE_CODES.get(mem.type, 0.0)
        vec[base + 1] = max(0.0, 1.0 - ticks_ago / MEMORY_HORIZON_TICKS)
        vec[base + 2] = mem.significance

    vec[28] = min(p.camera_zoom / 5.0, 1.0)
    return vec


def sample_action(
    probabilities: Sequence[float],
    temperature: float,
    rng: np.random.Generator,
) -> int:
    """
    Temperature sampling: log-probs / T, re-softmax, inverse CDF.

    T < 1 sharpens the distribution towards the network's preference.
    """
    logits = np.log(np.asarray(probabilities, dtype=np.float64) + 1e-8) / temperature
    scaled = np.exp(logits - logits.max())
    scaled /= scaled.sum()

    r = rng.random()
    cumulative = 0.0
    for i, p in enumerate(scaled):
        cumulative += p
        if r < cumulative:
            return i
    return len(scaled) - 1


def _remembered(p: Perception, memory_type: str):
    return next((m for m in p.relevant_memories if m.type == memory_type), None)


def map_action(index: int, p: Perception) -> Action:
    """
    Turn an action index into a concrete, targeted Action.

    FORAGE and SOCIALIZE fall back to untargeted EXPLORE when nothing
    suitable is visible or remembered.
    """
    action = ActionType.from_index(index)

    if action is ActionType.FORAGE:
        food = _nearest(p, food_objects(p))
        if food is not None:
            return Action(action, food.x, food.y)
        remembered = _remembered(p, "found_food")
        if remembered is not None:
            return Action(action, remembered.x, remembered.y)
        return Action(ActionType.EXPLORE)

    if action is ActionType.SEEK_SHELTER:
        campfire = next((o for o in p.nearby_objects if o.type == "campfire"), None)
        if campfire is not None:
            return Action(action, campfire.x, campfire.y)
        remembered = _remembered(p, "found_shelter")
        if remembered is not None:
            return Action(action, remembered.x, remembered.y)
        tile = _nearest(p, (t for t in p.nearby_tiles if t.type in SHELTER_TILES))
        if tile is not None:
            return Action(action, tile.x, tile.y)
        return Action(action)

    if action is ActionType.SOCIALIZE:
        npc = _nearest(p, p.nearby_npcs)
        if npc is not None:
            return Action(action, npc.x, npc.y, target_npc_id=npc.id)
        return Action(ActionType.EXPLORE)

    if action in (ActionType.REST, ActionType.EXPLORE):
        return Action(action)

    return Action(ActionType.IDLE)


# Need index each action is meant to improve
ACTION_TARGET_NEED = {
    ActionType.FORAGE: 0,
    ActionType.REST: 1,
    ActionType.SOCIALIZE: 2,
    ActionType.EXPLORE: 3,
    ActionType.SEEK_SHELTER: 4,
}


def needs_delta(before: Needs, after: Needs) -> Tuple[float, ...]:
    return tuple(a - b for a, b in zip(after.as_tuple(), before.as_tuple()))


def was_successful(action: ActionType, delta: Sequence[float]) -> bool:
    """An action succeeded if the need it targets went up."""
    need = ACTION_TARGET_NEED.get(action)
    return need is not None and delta[need] > 0


def novelty(delta: Sequence[float]) -> float:
    return min(1.0, sum(abs(d) for d in delta))
