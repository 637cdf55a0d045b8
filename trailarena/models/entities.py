# trailarena/models/entities.py
"""Game entity models and data classes."""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from itertools import islice
from typing import Deque, NamedTuple, Optional, Tuple


class Direction(str, Enum):
    """Cardinal heading of an entity."""

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @property
    def delta(self) -> Tuple[int, int]:
        """Unit step along this heading (screen coordinates, y grows down)."""
        return _DELTAS[self]


_DELTAS = {
    Direction.UP: (0, -1),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
}


class MatchPhase(str, Enum):
    """Lifecycle phase of a match."""

    FILLING = "filling"
    COUNTDOWN = "countdown"
    RUNNING = "running"
    ENDED = "ended"
    DISPOSED = "disposed"


class TrailPoint(NamedTuple):
    """A rounded position left behind by an entity."""

    x: int
    y: int


@dataclass
class Entity:
    """Represents a human or bot participant in a match."""

    id: str
    name: str
    color: str
    x: float
    y: float
    heading: Direction
    is_bot: bool = False
    desired_heading: Optional[Direction] = None
    trail: Deque[TrailPoint] = field(default_factory=deque)
    alive: bool = True
    disconnected: bool = False
    killed_by: Optional[str] = None
    # Bot decision timer, both in milliseconds
    time_since_decision: float = 0
    decision_interval: float = 0

    def __setattr__(self, name, value):
        if name == "is_bot" and "is_bot" in self.__dict__:
            raise AttributeError("is_bot cannot change after creation")
        super().__setattr__(name, value)

    def push_trail(self, point: TrailPoint, cap: int):
        """Append a trail point, discarding the oldest ones past the cap."""
        self.trail.append(point)
        while len(self.trail) > cap:
            self.trail.popleft()

    def recent_trail(self, length: int):
        """Return the newest ``length`` trail points, oldest first."""
        if length <= 0:
            return []
        skip = max(0, len(self.trail) - length)
        return list(islice(self.trail, skip, None))


@dataclass
class QueuedParticipant:
    """A participant waiting in the lobby for a match."""

    session_id: str
    name: str = "Player"
    color: Optional[str] = None
