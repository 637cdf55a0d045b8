# trailarena/services/bot_service.py
"""Heading decisions for bot-controlled entities."""

import random

from trailarena.config.settings import MatchSettings
from trailarena.models.entities import Direction, Entity
from trailarena.services.spatial_index import TrailIndex
from trailarena.utils.helpers import DIRECTIONS, is_inside_area, project


class BotBrain:
    """Periodically steers bots away from trails they are about to hit.

    Purely heuristic: one step of lookahead, no path planning. When no
    direction is safe the bot keeps its heading.
    """

    def __init__(self, settings: MatchSettings, rng: random.Random = None):
        self.settings = settings
        self.rng = rng or random.Random()

    def draw_interval(self) -> int:
        """Random delay in ms before the next decision."""
        low, high = self.settings.bot_decision_range
        return self.rng.randint(low, high)

    def update(self, bot: Entity, index: TrailIndex, elapsed_ms: float) -> bool:
        """Advance the bot's timer and re-decide when it expires.

        Returns True when a decision was evaluated this call.
        """
        bot.time_since_decision += elapsed_ms
        if bot.time_since_decision <= bot.decision_interval:
            return False

        bot.time_since_decision = 0
        bot.decision_interval = self.draw_interval()
        bot.heading = self.choose_heading(bot, index)
        return True

    def choose_heading(self, bot: Entity, index: TrailIndex) -> Direction:
        for direction in self.candidates(bot.heading):
            x, y = project(bot.x, bot.y, direction, self.settings.speed)
            if not is_inside_area(x, y, self.settings.width, self.settings.height):
                continue
            if index.first_hazard(x, y, bot.id, self.settings.grace_points) is None:
                return direction
        return bot.heading

    @staticmethod
    def candidates(current: Direction):
        """Current heading first, then the rest in fixed order."""
        return [current] + [d for d in DIRECTIONS if d != current]
