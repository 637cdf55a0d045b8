import pytest

from trailarena.models.entities import Direction
from trailarena.models.errors import InvalidMessage
from trailarena.models.messages import (
    JoinRequest,
    Leave,
    QueueRequest,
    SetHeading,
    parse_client_message,
    parse_queue_request,
)


def test_parse_join():
    message = parse_client_message(
        {"type": "join", "matchId": "match_1", "playerData": {"name": "  Ann ", "color": "lime"}}
    )
    assert message == JoinRequest(match_id="match_1", name="Ann", color="lime")


def test_parse_join_without_player_data_uses_defaults():
    assert parse_client_message({"type": "join"}) == JoinRequest(match_id=None)


def test_parse_turn_and_leave():
    assert parse_client_message({"type": "turn", "dir": "left"}) == SetHeading(Direction.LEFT)
    assert parse_client_message({"type": "leave"}) == Leave()


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"type": "turn", "dir": "north-east"},
        {"type": "teleport"},
        {"type": "join", "matchId": 5},
        {"type": "join", "playerData": "Ann"},
    ],
)
def test_parse_rejects_bad_payloads(payload):
    with pytest.raises(InvalidMessage):
        parse_client_message(payload)


def test_parse_queue_request_truncates_long_names():
    request = parse_queue_request({"type": "queue", "name": "x" * 100})
    assert request == QueueRequest(name="x" * 24, color=None)
    with pytest.raises(InvalidMessage):
        parse_queue_request({"type": "turn"})
