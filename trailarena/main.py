# trailarena/main.py
"""Trail Arena server entrypoint."""

import argparse
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from trailarena.api.routes import GameAPI
from trailarena.config.settings import MatchSettings, settings_as_dict
from trailarena.services.websocket_service import WebSocketService

logger = logging.getLogger("trailarena")


def create_app(settings: MatchSettings = None) -> FastAPI:
    """Build the FastAPI app with its lobby and match sockets."""
    websocket_service = WebSocketService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        websocket_service.start_background_tasks()
        logger.info("Trail Arena server started")
        yield
        await websocket_service.shutdown()
        logger.info("Trail Arena server stopped")

    app = FastAPI(title="Trail Arena Server", lifespan=lifespan)
    app.state.websocket_service = websocket_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(GameAPI(websocket_service).router)

    @app.websocket("/ws/lobby")
    async def lobby_endpoint(websocket: WebSocket):
        await websocket_service.handle_lobby(websocket)

    @app.websocket("/ws/match")
    async def match_endpoint(websocket: WebSocket):
        await websocket_service.handle_match(websocket)

    return app


def parse_args(argv=None):
    """Server options plus one flag per MatchSettings field."""
    defaults = MatchSettings()
    parser = argparse.ArgumentParser(description="Trail Arena game server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=2567)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--tick-rate", type=int, default=defaults.tick_rate)
    parser.add_argument("--max-players", type=int, default=defaults.max_players)
    parser.add_argument("--width", type=int, default=defaults.width)
    parser.add_argument("--height", type=int, default=defaults.height)
    parser.add_argument("--speed", type=float, default=defaults.speed)
    parser.add_argument("--trail-keep", type=int, default=defaults.trail_keep)
    parser.add_argument(
        "--snapshot-trail-length", type=int, default=defaults.snapshot_trail_length
    )
    parser.add_argument("--cell-size", type=int, default=defaults.cell_size)
    parser.add_argument("--grace-points", type=int, default=defaults.grace_points)
    parser.add_argument("--spawn-margin", type=int, default=defaults.spawn_margin)
    parser.add_argument("--join-window", type=float, default=defaults.join_window)
    parser.add_argument(
        "--bot-decision-range",
        type=int,
        nargs=2,
        metavar=("MIN_MS", "MAX_MS"),
        default=list(defaults.bot_decision_range),
    )
    parser.add_argument("--end-grace-delay", type=float, default=defaults.end_grace_delay)
    parser.add_argument("--draft-interval", type=float, default=defaults.draft_interval)
    parser.add_argument("--idle-timeout", type=float, default=defaults.idle_timeout)
    return parser.parse_args(argv)


def settings_from_args(args) -> MatchSettings:
    """Build MatchSettings from parsed flags; raises ValueError on bad values."""
    return MatchSettings(
        width=args.width,
        height=args.height,
        max_players=args.max_players,
        tick_rate=args.tick_rate,
        speed=args.speed,
        trail_keep=args.trail_keep,
        snapshot_trail_length=args.snapshot_trail_length,
        cell_size=args.cell_size,
        grace_points=args.grace_points,
        join_window=args.join_window,
        bot_decision_range=tuple(args.bot_decision_range),
        end_grace_delay=args.end_grace_delay,
        draft_interval=args.draft_interval,
        spawn_margin=args.spawn_margin,
        idle_timeout=args.idle_timeout,
    )


def main(argv=None):
    import uvicorn

    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        settings = settings_from_args(args)
    except ValueError as e:
        raise SystemExit(f"Invalid match settings: {e}") from None
    logger.info("Match settings: %s", settings_as_dict(settings))
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
