import random

import pytest

from trailarena.config.settings import MatchSettings
from trailarena.models.entities import Direction
from trailarena.services.game_service import GameService


@pytest.fixture
def settings() -> MatchSettings:
    return MatchSettings()


@pytest.fixture
def fast_settings() -> MatchSettings:
    """Short timers so lifecycle tests finish in well under a second."""
    return MatchSettings(
        tick_rate=100,
        join_window=0.01,
        end_grace_delay=0.01,
        draft_interval=0.01,
        idle_timeout=0.05,
    )


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def place():
    """Put an entity at an exact position and heading with an empty trail."""

    def _place(entity, x, y, heading: Direction):
        entity.x = x
        entity.y = y
        entity.heading = heading
        entity.desired_heading = None
        entity.trail.clear()
        return entity

    return _place


@pytest.fixture
def game(settings, rng) -> GameService:
    return GameService(settings, rng)
