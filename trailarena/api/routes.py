# trailarena/api/routes.py
"""API routes for the game server."""

from fastapi import APIRouter, HTTPException

from trailarena.config.settings import get_game_config
from trailarena.models.errors import StaleReference
from trailarena.services.websocket_service import WebSocketService


class GameAPI:
    """API routes for game-related endpoints."""

    def __init__(self, websocket_service: WebSocketService):
        self.websocket_service = websocket_service
        self.router = APIRouter()
        self._setup_routes()

    def _setup_routes(self):
        """Set up all API routes."""

        @self.router.get("/")
        async def root():
            """Root endpoint."""
            return {"message": "Trail Arena Server Running"}

        @self.router.get("/api/game/config")
        async def get_game_config_endpoint():
            """Get the tunable match configuration."""
            return get_game_config(self.websocket_service.settings)

        @self.router.get("/api/game/stats")
        async def get_game_stats():
            """Get server statistics."""
            return self.websocket_service.stats()

        @self.router.get("/api/matches")
        async def get_matches():
            """Get a summary of every live match."""
            return {"matches": self.websocket_service.registry.stats()}

        @self.router.get("/api/matches/{match_id}")
        async def get_match(match_id: str):
            """Get the current state of one match."""
            try:
                match = self.websocket_service.registry.get(match_id)
            except StaleReference:
                raise HTTPException(status_code=404, detail="Match not found")
            return {**match.summary(), "state": match.game.export_state()}
