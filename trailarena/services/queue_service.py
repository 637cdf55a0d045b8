# trailarena/services/queue_service.py
"""Lobby queue and periodic drafting into new matches."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, List, Optional

from trailarena.models.entities import QueuedParticipant
from trailarena.services.match_service import MatchController, MatchRegistry
from trailarena.services.scheduling import ScheduledTask

logger = logging.getLogger(__name__)

Notify = Callable[[str, dict], Awaitable[None]]


@dataclass
class Draft:
    """Participants pulled from the queue into one new match."""

    match: MatchController
    participants: List[QueuedParticipant]

    @property
    def match_id(self) -> str:
        return self.match.match_id


class QueueController:
    """FIFO of waiting participants, drafted into matches every few seconds."""

    def __init__(self, registry: MatchRegistry, notify: Notify = None):
        self.registry = registry
        self.capacity = registry.settings.max_players
        self.interval = registry.settings.draft_interval
        self.queue: Deque[QueuedParticipant] = deque()
        self._notify = notify
        self._loop_task: Optional[ScheduledTask] = None

    async def enqueue(self, session_id: str, name: str = "Player", color: str = None):
        """Append a participant and tell it where it stands."""
        participant = QueuedParticipant(session_id=session_id, name=name, color=color)
        self.queue.append(participant)
        logger.info("%s queued (%d waiting)", name, len(self.queue))
        await self._send(session_id, self._queue_update(session_id))
        return participant

    def remove(self, session_id: str) -> bool:
        """Drop a participant from the queue; False if it was not queued."""
        for participant in self.queue:
            if participant.session_id == session_id:
                self.queue.remove(participant)
                logger.info("%s left the queue", participant.name)
                return True
        return False

    def position(self, session_id: str) -> Optional[int]:
        """1-based position in the queue, or None."""
        for pos, participant in enumerate(self.queue, start=1):
            if participant.session_id == session_id:
                return pos
        return None

    def draft(self) -> Optional[Draft]:
        """Move up to ``capacity`` participants from the front into a new match."""
        if not self.queue:
            return None
        count = min(self.capacity, len(self.queue))
        participants = [self.queue.popleft() for _ in range(count)]
        match = self.registry.create()
        logger.info(
            "Drafted %d participant(s) into %s, %d still queued",
            count,
            match.match_id,
            len(self.queue),
        )
        return Draft(match=match, participants=participants)

    async def run_draft(self) -> Optional[Draft]:
        """One drafting pass: draft, then notify drafted and waiting participants.

        Everyone still queued gets a fresh position on every pass, whether or
        not a match was created.
        """
        draft = self.draft()
        if draft is not None:
            draft.match.arm_idle_timeout()
            await self._announce(draft)
        await self.notify_positions()
        return draft

    async def _announce(self, draft: Draft):
        for participant in draft.participants:
            await self._send(
                participant.session_id,
                {
                    "type": "matchCreated",
                    "roomName": "match",
                    "matchId": draft.match_id,
                    "playerData": {
                        "sessionId": participant.session_id,
                        "name": participant.name,
                        "color": participant.color,
                    },
                },
            )

    async def notify_positions(self):
        """Send every queued participant its current position and the total."""
        for participant in list(self.queue):
            await self._send(
                participant.session_id, self._queue_update(participant.session_id)
            )

    def _queue_update(self, session_id: str) -> dict:
        return {
            "type": "queueUpdate",
            "pos": self.position(session_id),
            "total": len(self.queue),
        }

    async def _send(self, session_id: str, message: dict):
        if not self._notify:
            return
        try:
            await self._notify(session_id, message)
        except Exception:
            logger.exception("Failed to notify %s", session_id)

    # Background drafting
    def start(self):
        """Start the periodic drafting loop, once."""
        if self._loop_task and self._loop_task.active:
            return
        self._loop_task = ScheduledTask.start("lobby:drafts", self._draft_loop())

    async def _draft_loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_draft()
            except Exception:
                logger.exception("Drafting pass failed")

    async def stop(self):
        """Cancel the drafting loop and wait for it to finish."""
        if self._loop_task and self._loop_task.cancel():
            await self._loop_task.wait()
