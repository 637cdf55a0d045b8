# trailarena/config/settings.py
"""Game configuration constants and settings."""

from dataclasses import dataclass, asdict
from typing import Tuple

# Play area settings
PLAY_AREA_WIDTH = 1200
PLAY_AREA_HEIGHT = 800
SPAWN_MARGIN = 100

# Match settings
MAX_PLAYERS = 20
JOIN_WINDOW = 2.5  # seconds between first join and start
END_GRACE_DELAY = 3.0  # seconds before an ended match is disposed

# Movement settings
TICK_RATE = 20  # ticks per second
PLAYER_SPEED = 4  # units per tick
TRAIL_KEEP = 800
SNAPSHOT_TRAIL_LENGTH = 120

# Collision settings
CELL_SIZE = 6
GRACE_POINTS = 10  # own most recent trail points that never collide

# Bot settings
BOT_DECISION_MIN = 200  # ms
BOT_DECISION_MAX = 700  # ms
BOT_COLORS = ["cyan", "magenta", "yellow", "lime", "blue", "red", "green"]

# Lobby settings
DRAFT_INTERVAL = 2.0  # seconds between queue drafts
MATCH_IDLE_TIMEOUT = 30.0  # seconds a drafted match waits for its first join


@dataclass(frozen=True)
class MatchSettings:
    """Operator-tunable values for a single match."""

    width: int = PLAY_AREA_WIDTH
    height: int = PLAY_AREA_HEIGHT
    max_players: int = MAX_PLAYERS
    tick_rate: int = TICK_RATE
    speed: float = PLAYER_SPEED
    trail_keep: int = TRAIL_KEEP
    snapshot_trail_length: int = SNAPSHOT_TRAIL_LENGTH
    cell_size: int = CELL_SIZE
    grace_points: int = GRACE_POINTS
    join_window: float = JOIN_WINDOW
    end_grace_delay: float = END_GRACE_DELAY
    bot_decision_range: Tuple[int, int] = (BOT_DECISION_MIN, BOT_DECISION_MAX)
    spawn_margin: int = SPAWN_MARGIN
    draft_interval: float = DRAFT_INTERVAL
    idle_timeout: float = MATCH_IDLE_TIMEOUT

    def __post_init__(self):
        if self.tick_rate <= 0:
            raise ValueError("tick_rate must be positive")
        if self.max_players < 1:
            raise ValueError("max_players must be at least 1")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("width and height must be positive")
        if self.speed <= 0:
            raise ValueError("speed must be positive")
        if self.cell_size <= 0:
            raise ValueError("cell_size must be positive")
        if self.grace_points < 0:
            raise ValueError("grace_points must not be negative")
        if self.trail_keep <= self.grace_points:
            # Otherwise no trail point ever ages out of the grace window
            raise ValueError("trail_keep must exceed grace_points")
        low, high = self.bot_decision_range
        if low > high:
            raise ValueError("bot_decision_range must be (min, max)")

    @property
    def tick_ms(self) -> float:
        """Length of one tick in milliseconds."""
        return 1000 / self.tick_rate

    @property
    def tick_seconds(self) -> float:
        """Length of one tick in seconds."""
        return 1 / self.tick_rate


def get_game_config(settings: MatchSettings = None):
    """Get the complete game configuration as a dictionary."""
    settings = settings or MatchSettings()
    return {
        "playArea": {"w": settings.width, "h": settings.height},
        "maxPlayers": settings.max_players,
        "tickRate": settings.tick_rate,
        "speed": settings.speed,
        "trailKeep": settings.trail_keep,
        "snapshotTrailLength": settings.snapshot_trail_length,
        "cellSize": settings.cell_size,
        "gracePoints": settings.grace_points,
        "joinWindow": settings.join_window,
        "endGraceDelay": settings.end_grace_delay,
        "botDecisionRange": list(settings.bot_decision_range),
        "draftInterval": settings.draft_interval,
        "idleTimeout": settings.idle_timeout,
    }


def settings_as_dict(settings: MatchSettings) -> dict:
    """Plain snake_case view of the settings, used for logging."""
    return asdict(settings)
