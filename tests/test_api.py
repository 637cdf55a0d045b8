import pytest
from fastapi.testclient import TestClient

from trailarena.config.settings import MatchSettings
from trailarena.main import create_app, parse_args, settings_from_args


@pytest.fixture
def client():
    # Long draft interval keeps the background loop out of the way
    app = create_app(MatchSettings(draft_interval=60))
    with TestClient(app) as test_client:
        yield test_client


def test_root(client):
    assert client.get("/").json() == {"message": "Trail Arena Server Running"}


def test_game_config(client):
    config = client.get("/api/game/config").json()

    assert config["playArea"] == {"w": 1200, "h": 800}
    assert config["maxPlayers"] == 20
    assert config["tickRate"] == 20


def test_stats_and_matches(client):
    registry = client.app.state.websocket_service.registry
    registry.create("match_api")

    assert client.get("/api/game/stats").json()["activeMatches"] == 1
    matches = client.get("/api/matches").json()["matches"]
    assert matches[0]["matchId"] == "match_api"
    assert client.get("/api/matches/match_api").json()["state"]["players"] == {}
    assert client.get("/api/matches/nope").status_code == 404


def test_lobby_reports_queue_position(client):
    with client.websocket_connect("/ws/lobby") as websocket:
        websocket.send_json({"type": "queue", "name": "Ann"})
        assert websocket.receive_json() == {"type": "queueUpdate", "pos": 1, "total": 1}


def test_match_join_rejected_for_unknown_match(client):
    with client.websocket_connect("/ws/match") as websocket:
        websocket.send_json({"type": "join", "matchId": "match_missing"})
        reply = websocket.receive_json()

    assert reply["type"] == "error"
    assert reply["code"] == "unknown_match"


def test_match_join_requires_token(client):
    with client.websocket_connect("/ws/match") as websocket:
        websocket.send_json({"type": "join", "playerData": {"name": "Ann"}})
        reply = websocket.receive_json()

    assert reply["code"] == "missing_match_id"


def test_match_join_accepted(client):
    registry = client.app.state.websocket_service.registry
    registry.create("match_ok")

    with client.websocket_connect("/ws/match") as websocket:
        websocket.send_json({"type": "join", "matchId": "match_ok", "playerData": {"name": "Ann"}})
        reply = websocket.receive_json()

    assert reply["type"] == "joined"
    assert reply["matchId"] == "match_ok"
    assert registry.get("match_ok").game.population == 1


def test_cli_overrides_settings():
    args = parse_args(
        [
            "--max-players", "8",
            "--bot-decision-range", "100", "300",
            "--cell-size", "8",
            "--grace-points", "4",
            "--snapshot-trail-length", "60",
            "--idle-timeout", "12.5",
            "--spawn-margin", "40",
        ]
    )
    settings = settings_from_args(args)

    assert settings.max_players == 8
    assert settings.bot_decision_range == (100, 300)
    assert settings.cell_size == 8
    assert settings.grace_points == 4
    assert settings.snapshot_trail_length == 60
    assert settings.idle_timeout == 12.5
    assert settings.spawn_margin == 40


def test_cli_defaults_match_settings_defaults():
    assert settings_from_args(parse_args([])) == MatchSettings()


def test_cli_rejects_trail_shorter_than_grace_window():
    with pytest.raises(ValueError):
        settings_from_args(parse_args(["--trail-keep", "0"]))
