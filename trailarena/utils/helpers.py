# trailarena/utils/helpers.py
"""Utility functions and helpers."""

import itertools
import random
import time
import uuid
from typing import Tuple

from trailarena.models.entities import Direction

DIRECTIONS = (Direction.UP, Direction.DOWN, Direction.LEFT, Direction.RIGHT)

_match_counter = itertools.count()


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def clamp_to_area(x: float, y: float, width: float, height: float) -> tuple:
    """Clamp position to the play area boundaries."""
    return clamp(x, 0, width), clamp(y, 0, height)


def is_inside_area(x: float, y: float, width: float, height: float) -> bool:
    """Check whether a point lies inside the play area, edges included."""
    return 0 <= x <= width and 0 <= y <= height


def project(x: float, y: float, direction: Direction, distance: float) -> tuple:
    """Position reached after moving distance along direction."""
    dx, dy = direction.delta
    return x + dx * distance, y + dy * distance


def cell_key(x: float, y: float, cell_size: int) -> Tuple[int, int]:
    """Grid cell containing a point."""
    return int(x // cell_size), int(y // cell_size)


def random_direction(rng: random.Random = random) -> Direction:
    """Uniformly random cardinal heading."""
    return rng.choice(DIRECTIONS)


def random_spawn(
    width: int, height: int, margin: int, rng: random.Random = random
) -> tuple:
    """Random integer spawn point at least margin away from every edge."""
    margin_x = min(margin, width // 2)
    margin_y = min(margin, height // 2)
    return (
        round(rng.uniform(margin_x, width - margin_x)),
        round(rng.uniform(margin_y, height - margin_y)),
    )


def generate_session_id() -> str:
    """Fresh opaque session id for a connecting client."""
    return str(uuid.uuid4())


def generate_match_id() -> str:
    """Unique match identifier, e.g. ``match_1718000000000_3``."""
    return f"match_{int(time.time() * 1000)}_{next(_match_counter)}"
