# trailarena/services/game_service.py
"""Core game logic and state management for a single match."""

import logging
import random
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from trailarena.config.settings import BOT_COLORS, MatchSettings
from trailarena.models.entities import Direction, Entity, TrailPoint
from trailarena.services.bot_service import BotBrain
from trailarena.services.spatial_index import TrailIndex
from trailarena.utils.helpers import clamp_to_area, project, random_direction, random_spawn

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Outcome of one simulation step."""

    state: dict
    ended: bool


class GameService:
    """Authoritative simulation of one match.

    Owns the match's entities and its trail index. Nothing outside ``tick``
    moves an entity, grows a trail or kills anyone; inbound input only sets
    ``desired_heading``.
    """

    def __init__(self, settings: MatchSettings = None, rng: random.Random = None):
        self.settings = settings or MatchSettings()
        self.rng = rng or random.Random()
        self.entities: Dict[str, Entity] = {}
        self.index = TrailIndex(self.settings.cell_size)
        self.bot_brain = BotBrain(self.settings, self.rng)
        self.tick_count = 0
        self.ended = False
        self.ended_at_tick: Optional[int] = None
        self._final_state: Optional[dict] = None
        self._bot_counter = 0

    # Population
    def add_human(self, session_id: str, name: str, color: str = None) -> Entity:
        """Create the entity for a human that joined the match."""
        entity = self._spawn_entity(
            session_id,
            name or "Player",
            color or self.rng.choice(BOT_COLORS),
            is_bot=False,
        )
        logger.debug("Human %s (%s) spawned at (%s, %s)", name, session_id, entity.x, entity.y)
        return entity

    def fill_with_bots(self) -> List[Entity]:
        """Add bots until the match holds exactly max_players entities."""
        needed = max(0, self.settings.max_players - len(self.entities))
        stamp = int(time.time() * 1000)
        bots = []
        for i in range(needed):
            bot_id = f"bot_{stamp}_{self._bot_counter}_{i}"
            self._bot_counter += 1
            bot = self._spawn_entity(
                bot_id, f"BOT{i + 1}", BOT_COLORS[i % len(BOT_COLORS)], is_bot=True
            )
            bot.decision_interval = self.bot_brain.draw_interval()
            bots.append(bot)
        return bots

    def _spawn_entity(self, entity_id: str, name: str, color: str, is_bot: bool) -> Entity:
        x, y = random_spawn(
            self.settings.width, self.settings.height, self.settings.spawn_margin, self.rng
        )
        entity = Entity(
            id=entity_id,
            name=name,
            color=color,
            x=x,
            y=y,
            heading=random_direction(self.rng),
            is_bot=is_bot,
        )
        self.entities[entity_id] = entity
        return entity

    @property
    def population(self) -> int:
        return len(self.entities)

    @property
    def human_count(self) -> int:
        return sum(1 for e in self.entities.values() if not e.is_bot)

    def alive_entities(self) -> List[Entity]:
        return [e for e in self.entities.values() if e.alive]

    # Input
    def set_desired_heading(self, entity_id: str, direction: Direction) -> bool:
        """Record a heading request; ignored for dead or unknown entities."""
        entity = self.entities.get(entity_id)
        if entity is None or not entity.alive:
            return False
        entity.desired_heading = direction
        return True

    def mark_disconnected(self, entity_id: str) -> Optional[Entity]:
        """Kill a departed participant but keep it (and its trail) in the match."""
        entity = self.entities.get(entity_id)
        if entity is None:
            return None
        entity.alive = False
        entity.disconnected = True
        return entity

    # Simulation
    def tick(self) -> TickResult:
        """Advance the match by one fixed step."""
        if self.ended:
            return TickResult(state=self._final_state, ended=True)

        self.tick_count += 1
        for entity in self.entities.values():
            if entity.alive:
                self._move(entity)

        self.index = TrailIndex.build(self.entities.values(), self.settings.cell_size)
        self._resolve_collisions()

        if len(self.alive_entities()) <= 1:
            self.ended = True
            self.ended_at_tick = self.tick_count
            self._final_state = self.export_state(ended=True)
            winner = self.winner()
            logger.info(
                "Match ended at tick %d, winner: %s",
                self.tick_count,
                winner.name if winner else "nobody",
            )
            return TickResult(state=self._final_state, ended=True)

        return TickResult(state=self.export_state(ended=False), ended=False)

    def _move(self, entity: Entity):
        """Steer, translate, clamp and record one entity."""
        if entity.is_bot:
            self.bot_brain.update(entity, self.index, self.settings.tick_ms)
        elif entity.desired_heading is not None:
            entity.heading = entity.desired_heading

        x, y = project(entity.x, entity.y, entity.heading, self.settings.speed)
        entity.x, entity.y = clamp_to_area(x, y, self.settings.width, self.settings.height)
        entity.push_trail(
            TrailPoint(round(entity.x), round(entity.y)), self.settings.trail_keep
        )

    def _resolve_collisions(self):
        """Kill every alive entity whose position shares a cell with a hazard."""
        for entity in self.entities.values():
            if not entity.alive:
                continue
            hit = self.index.first_hazard(
                entity.x, entity.y, entity.id, self.settings.grace_points
            )
            if hit is None:
                continue
            entity.alive = False
            owner = self.entities.get(hit.owner_id)
            entity.killed_by = owner.name if owner else None
            logger.debug("%s hit the trail of %s", entity.name, entity.killed_by)

    def winner(self) -> Optional[Entity]:
        """The sole survivor of an ended match, if there is one."""
        alive = self.alive_entities()
        if self.ended and len(alive) == 1:
            return alive[0]
        return None

    # Snapshots
    def export_entity(self, entity: Entity) -> dict:
        """Wire form of one entity, with only its newest trail points."""
        return {
            "id": entity.id,
            "name": entity.name,
            "color": entity.color,
            "x": round(entity.x),
            "y": round(entity.y),
            "dir": entity.heading.value,
            "alive": entity.alive,
            "isBot": entity.is_bot,
            "disconnected": entity.disconnected,
            "killedBy": entity.killed_by,
            "trail": [
                {"x": p.x, "y": p.y}
                for p in entity.recent_trail(self.settings.snapshot_trail_length)
            ],
        }

    def export_state(self, ended: bool = None) -> dict:
        """Lightweight snapshot of every entity for broadcasting."""
        if ended is None:
            ended = self.ended
        state = {
            "players": {eid: self.export_entity(e) for eid, e in self.entities.items()},
            "ended": ended,
            "tick": self.tick_count,
        }
        if ended:
            winner = self.winner()
            state["winner"] = winner.id if winner else None
        return state
