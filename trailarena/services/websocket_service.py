# trailarena/services/websocket_service.py
"""WebSocket connection management and message handling."""

import json
import logging
import random
from typing import Dict

from fastapi import WebSocket, WebSocketDisconnect, status

from trailarena.config.settings import MatchSettings
from trailarena.models.errors import AdmissionError, InvalidMessage, StaleReference
from trailarena.models.messages import (
    JoinRequest,
    Leave,
    parse_client_message,
    parse_queue_request,
)
from trailarena.utils.helpers import generate_session_id
from .match_service import MatchController, MatchRegistry
from .queue_service import QueueController

logger = logging.getLogger(__name__)


class WebSocketService:
    """Bridges lobby and match sockets to the queue and the match registry."""

    def __init__(self, settings: MatchSettings = None, rng: random.Random = None):
        self.settings = settings or MatchSettings()
        self.registry = MatchRegistry(
            self.settings,
            sink=self._broadcast_to_match,
            on_disposed=self._detach_match,
            rng=rng,
        )
        self.queue = QueueController(self.registry, notify=self._send_to_lobby)
        self.lobby_clients: Dict[str, WebSocket] = {}
        self.match_clients: Dict[str, Dict[str, WebSocket]] = {}

    def start_background_tasks(self):
        """Start background tasks like queue drafting."""
        self.queue.start()

    async def shutdown(self):
        await self.queue.stop()
        await self.registry.dispose_all()

    # Lobby
    async def handle_lobby(self, websocket: WebSocket):
        """Queue a client and keep its socket around for the draft notice."""
        await websocket.accept()
        session_id = generate_session_id()
        logger.info("Lobby connection %s from %s", session_id, websocket.client)

        try:
            request = parse_queue_request(await self._receive(websocket))
            self.lobby_clients[session_id] = websocket
            await self.queue.enqueue(session_id, request.name, request.color)
            while True:
                # Nothing else is expected from a queued client
                await websocket.receive_text()
        except InvalidMessage as e:
            await self._reject(websocket, "invalid_message", str(e))
        except WebSocketDisconnect:
            pass
        finally:
            self.lobby_clients.pop(session_id, None)
            if self.queue.remove(session_id):
                await self.queue.notify_positions()

    async def _send_to_lobby(self, session_id: str, message: dict):
        websocket = self.lobby_clients.get(session_id)
        if websocket is None:
            logger.debug("Lobby client %s is gone, dropping %s", session_id, message["type"])
            return
        await websocket.send_json(message)

    # Match
    async def handle_match(self, websocket: WebSocket):
        """Admit a client into a match, then feed its input to the controller."""
        await websocket.accept()
        session_id = generate_session_id()

        try:
            match = await self._admit(websocket, session_id)
        except WebSocketDisconnect:
            return
        if match is None:
            return

        left = False
        try:
            self.match_clients.setdefault(match.match_id, {})[session_id] = websocket
            await websocket.send_json(
                {"type": "joined", "sessionId": session_id, "matchId": match.match_id}
            )
            while not left:
                left = await self._process_message(websocket, match, session_id)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.exception("WebSocket error for %s in %s: %s", session_id, match.match_id, e)
        finally:
            self._forget(match.match_id, session_id)
            if not left:
                self._drop_participant(match, session_id)

    async def _admit(self, websocket: WebSocket, session_id: str):
        try:
            request = parse_client_message(await self._receive(websocket))
            if not isinstance(request, JoinRequest):
                raise AdmissionError("join_required", "First message must be a join")
            if not request.match_id:
                raise AdmissionError("missing_match_id", "A match id is required to join")
            try:
                match = self.registry.get(request.match_id)
            except StaleReference:
                raise AdmissionError("unknown_match", "No such match") from None
            match.join(request, session_id)
        except (AdmissionError, InvalidMessage, StaleReference) as e:
            code = getattr(e, "code", "rejected")
            logger.info("Rejected join from %s: %s", websocket.client, e)
            await self._reject(websocket, code, str(e))
            return None
        return match

    async def _process_message(
        self, websocket: WebSocket, match: MatchController, session_id: str
    ) -> bool:
        """Handle one inbound frame; True once the client has left."""
        try:
            message = parse_client_message(await self._receive(websocket))
            match.handle(session_id, message)
        except InvalidMessage as e:
            logger.warning("Dropping bad message from %s: %s", session_id, e)
            return False
        except StaleReference as e:
            logger.debug("Dropping stale message from %s: %s", session_id, e)
            return False
        except AdmissionError as e:
            await websocket.send_json(e.to_dict())
            return False

        if isinstance(message, Leave):
            await websocket.close()
            return True
        return False

    def _drop_participant(self, match: MatchController, session_id: str):
        try:
            match.leave(session_id)
        except StaleReference:
            logger.debug("%s disconnected after %s was disposed", session_id, match.match_id)

    def _forget(self, match_id: str, session_id: str):
        clients = self.match_clients.get(match_id)
        if clients is not None:
            clients.pop(session_id, None)

    async def _broadcast_to_match(self, match_id: str, message: dict):
        """Broadcast a message to all clients of one match."""
        clients = self.match_clients.get(match_id, {})
        disconnected = set()

        for session_id, client in list(clients.items()):
            try:
                await client.send_json(message)
            except Exception:
                disconnected.add(session_id)

        for session_id in disconnected:
            clients.pop(session_id, None)

    async def _detach_match(self, match: MatchController):
        """Close every socket still attached to a disposed match."""
        clients = self.match_clients.pop(match.match_id, {})
        for session_id, client in clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.debug("Closing %s failed: %s", session_id, e)

    # Helpers
    async def _receive(self, websocket: WebSocket):
        text = await websocket.receive_text()
        try:
            return json.loads(text)
        except ValueError:
            raise InvalidMessage("message is not valid JSON") from None

    async def _reject(self, websocket: WebSocket, code: str, message: str):
        await websocket.send_json({"type": "error", "code": code, "message": message})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)

    def stats(self) -> dict:
        return {
            "activeMatches": len(self.registry),
            "queued": len(self.queue.queue),
            "lobbyConnections": len(self.lobby_clients),
            "matchConnections": sum(len(c) for c in self.match_clients.values()),
        }
