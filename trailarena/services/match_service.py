# trailarena/services/match_service.py
"""Match lifecycle: admission, countdown, bot fill, tick loop and disposal."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Iterator, List, Optional

from trailarena.config.settings import MatchSettings
from trailarena.models.entities import Direction, Entity, MatchPhase
from trailarena.models.errors import AdmissionError, StaleReference
from trailarena.models.messages import ClientMessage, JoinRequest, Leave, SetHeading
from trailarena.services.game_service import GameService
from trailarena.services.scheduling import ScheduledTask
from trailarena.utils.helpers import generate_match_id, generate_session_id

logger = logging.getLogger(__name__)

Broadcast = Callable[[dict], Awaitable[None]]
DisposeHook = Callable[["MatchController"], Awaitable[None]]

JOINABLE_PHASES = (MatchPhase.FILLING, MatchPhase.COUNTDOWN)


class MatchController:
    """Drives one match from its first join to its disposal.

    Phases move strictly forward: FILLING -> COUNTDOWN -> RUNNING -> ENDED ->
    DISPOSED. All simulation state lives in ``self.game`` and is only mutated
    by the tick loop, apart from heading requests and disconnect marks.
    """

    def __init__(
        self,
        match_id: str,
        settings: MatchSettings = None,
        broadcast: Broadcast = None,
        on_disposed: DisposeHook = None,
        rng: random.Random = None,
    ):
        self.match_id = match_id
        self.settings = settings or MatchSettings()
        self.game = GameService(self.settings, rng)
        self.phase = MatchPhase.FILLING
        self.dropped_ticks = 0
        self._broadcast = broadcast
        self._on_disposed = on_disposed
        self._countdown: Optional[ScheduledTask] = None
        self._ticker: Optional[ScheduledTask] = None
        self._disposal: Optional[ScheduledTask] = None
        self._idle: Optional[ScheduledTask] = None

    @property
    def joinable(self) -> bool:
        return (
            self.phase in JOINABLE_PHASES
            and self.game.population < self.settings.max_players
        )

    # Inbound
    def join(self, request: JoinRequest, session_id: str = None) -> Entity:
        """Admit a human, or raise AdmissionError before anything is created."""
        if not request.match_id:
            raise AdmissionError("missing_match_id", "A match id is required to join")
        if request.match_id != self.match_id:
            raise AdmissionError("match_id_mismatch", "Match id does not match this match")
        if self.phase == MatchPhase.DISPOSED:
            raise StaleReference(f"match {self.match_id} is disposed")
        if self.phase not in JOINABLE_PHASES:
            raise AdmissionError("match_started", "Match already started")
        if self.game.population >= self.settings.max_players:
            raise AdmissionError("match_full", "Match is full")

        session_id = session_id or generate_session_id()
        if session_id in self.game.entities:
            raise AdmissionError("already_joined", "Session already joined this match")

        entity = self.game.add_human(session_id, request.name, request.color)
        logger.info(
            "%s joined %s (%d/%d)",
            entity.name,
            self.match_id,
            self.game.population,
            self.settings.max_players,
        )

        if self.phase == MatchPhase.FILLING:
            self.phase = MatchPhase.COUNTDOWN
            if self._idle:
                self._idle.cancel()
            self._countdown = ScheduledTask.after(
                f"{self.match_id}:countdown", self.settings.join_window, self.start
            )
        return entity

    def set_heading(self, session_id: str, direction: Direction) -> bool:
        """Last write wins; dead entities are silently ignored."""
        self._require_entity(session_id)
        return self.game.set_desired_heading(session_id, direction)

    def leave(self, session_id: str) -> Entity:
        """Mark a participant dead and disconnected, keeping it in the match."""
        self._require_entity(session_id)
        entity = self.game.mark_disconnected(session_id)
        logger.info("%s left %s", entity.name, self.match_id)
        return entity

    def handle(self, session_id: str, message: ClientMessage):
        """Route one inbound client message."""
        if isinstance(message, SetHeading):
            return self.set_heading(session_id, message.direction)
        elif isinstance(message, Leave):
            return self.leave(session_id)
        elif isinstance(message, JoinRequest):
            return self.join(message, session_id)
        raise TypeError(f"unsupported message {message!r}")

    def _require_entity(self, session_id: str):
        if self.phase == MatchPhase.DISPOSED:
            raise StaleReference(f"match {self.match_id} is disposed")
        if session_id not in self.game.entities:
            raise StaleReference(f"{session_id} is not part of {self.match_id}")

    # Lifecycle
    def arm_idle_timeout(self):
        """Dispose the match if nobody joins it within the idle timeout."""
        if self.phase != MatchPhase.FILLING or self._idle:
            return
        self._idle = ScheduledTask.after(
            f"{self.match_id}:idle", self.settings.idle_timeout, self._expire_if_idle
        )

    async def _expire_if_idle(self):
        if self.phase == MatchPhase.FILLING:
            logger.info("Nobody joined %s, disposing it", self.match_id)
            await self.dispose()

    async def start(self):
        """Fill with bots and start ticking."""
        if self.phase != MatchPhase.COUNTDOWN:
            return
        bots = self.game.fill_with_bots()
        self.phase = MatchPhase.RUNNING
        logger.info(
            "Match %s started with %d humans and %d bots",
            self.match_id,
            self.game.human_count,
            len(bots),
        )
        await self._emit(
            {
                "type": "matchStarted",
                "playArea": {"w": self.settings.width, "h": self.settings.height},
                "playersCount": self.game.population,
            }
        )
        if self.phase != MatchPhase.RUNNING:
            return
        self._ticker = ScheduledTask.start(f"{self.match_id}:ticks", self._run_tick_loop())

    async def _run_tick_loop(self):
        """Tick on a fixed grid; missed slots are dropped, never replayed."""
        loop = asyncio.get_running_loop()
        period = self.settings.tick_seconds
        deadline = loop.time() + period
        try:
            while True:
                await asyncio.sleep(max(0.0, deadline - loop.time()))
                result = self.game.tick()
                await self._emit({"type": "state", **result.state})
                if result.ended:
                    self._finish()
                    return

                deadline += period
                now = loop.time()
                if now > deadline:
                    missed = int((now - deadline) // period) + 1
                    deadline += missed * period
                    self.dropped_ticks += missed
                    logger.warning(
                        "Match %s fell behind, dropped %d tick(s)", self.match_id, missed
                    )
        except Exception:
            logger.exception("Tick failed in match %s, disposing it", self.match_id)
            await self.dispose()

    def _finish(self):
        self.phase = MatchPhase.ENDED
        self._disposal = ScheduledTask.after(
            f"{self.match_id}:dispose", self.settings.end_grace_delay, self.dispose
        )

    async def stop(self):
        """Stop ticking without waiting for the end of the match."""
        if self._ticker and self._ticker.cancel():
            await self._ticker.wait()

    async def dispose(self):
        """Release timers and detach participants. Safe to call repeatedly."""
        if self.phase == MatchPhase.DISPOSED:
            return
        self.phase = MatchPhase.DISPOSED
        for handle in (self._countdown, self._ticker, self._disposal, self._idle):
            if handle:
                handle.cancel()
        logger.info("Match %s disposed", self.match_id)
        if self._on_disposed:
            await self._on_disposed(self)
        self.game.entities.clear()

    async def _emit(self, message: dict):
        if not self._broadcast:
            return
        try:
            await self._broadcast(message)
        except Exception:
            logger.exception("Broadcast to %s failed", self.match_id)

    def summary(self) -> dict:
        """Compact status of the match for the HTTP API."""
        return {
            "matchId": self.match_id,
            "phase": self.phase.value,
            "population": self.game.population,
            "humans": self.game.human_count,
            "alive": len(self.game.alive_entities()),
            "tick": self.game.tick_count,
            "droppedTicks": self.dropped_ticks,
            "joinable": self.joinable,
        }


class MatchRegistry:
    """Owns every live match, keyed by match id."""

    def __init__(
        self,
        settings: MatchSettings = None,
        sink: Callable[[str, dict], Awaitable[None]] = None,
        on_disposed: DisposeHook = None,
        rng: random.Random = None,
    ):
        self.settings = settings or MatchSettings()
        self.matches: Dict[str, MatchController] = {}
        self._sink = sink
        self._on_disposed = on_disposed
        self._rng = rng

    def create(self, match_id: str = None) -> MatchController:
        """Register a new match in the Filling phase, with its own seeded rng."""
        match_id = match_id or generate_match_id()
        if match_id in self.matches:
            raise ValueError(f"match {match_id} already exists")

        async def broadcast(message: dict):
            if self._sink:
                await self._sink(match_id, message)

        rng = random.Random(self._rng.random()) if self._rng else None
        controller = MatchController(
            match_id,
            self.settings,
            broadcast=broadcast,
            on_disposed=self._handle_disposed,
            rng=rng,
        )
        self.matches[match_id] = controller
        logger.info("Created match %s", match_id)
        return controller

    def get(self, match_id: str) -> MatchController:
        """Look up a live match, raising StaleReference once it is gone."""
        controller = self.matches.get(match_id)
        if controller is None:
            raise StaleReference(f"unknown match {match_id}")
        return controller

    async def remove(self, match_id: str):
        """Dispose a match and drop it from the registry."""
        controller = self.get(match_id)
        self.matches.pop(match_id, None)
        await controller.dispose()

    async def _handle_disposed(self, controller: MatchController):
        self.matches.pop(controller.match_id, None)
        if self._on_disposed:
            await self._on_disposed(controller)

    async def dispose_all(self):
        """Dispose every live match, e.g. on shutdown."""
        for controller in self:
            await self.remove(controller.match_id)

    def stats(self) -> List[dict]:
        """Summaries of every live match."""
        return [controller.summary() for controller in self]

    def __len__(self):
        return len(self.matches)

    def __contains__(self, match_id):
        return match_id in self.matches

    def __iter__(self) -> Iterator[MatchController]:
        return iter(list(self.matches.values()))
