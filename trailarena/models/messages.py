# trailarena/models/messages.py
"""Inbound client messages.

Clients only ever send intent. A match socket carries exactly three kinds of
message, modelled as the closed union ``ClientMessage``:

* ``JoinRequest`` - ``{"type": "join", "matchId": ..., "playerData": {...}}``
* ``SetHeading`` - ``{"type": "turn", "dir": "up" | "down" | "left" | "right"}``
* ``Leave`` - ``{"type": "leave"}``

The lobby socket carries a single ``QueueRequest``.
"""

from dataclasses import dataclass
from typing import Optional, Union

from trailarena.models.entities import Direction
from trailarena.models.errors import InvalidMessage

MAX_NAME_LENGTH = 24


@dataclass(frozen=True)
class JoinRequest:
    match_id: Optional[str]
    name: str = "Player"
    color: Optional[str] = None


@dataclass(frozen=True)
class SetHeading:
    direction: Direction


@dataclass(frozen=True)
class Leave:
    pass


@dataclass(frozen=True)
class QueueRequest:
    name: str = "Player"
    color: Optional[str] = None


ClientMessage = Union[JoinRequest, SetHeading, Leave]


def _clean_name(raw) -> str:
    if not isinstance(raw, str):
        return "Player"
    name = raw.strip()[:MAX_NAME_LENGTH]
    return name or "Player"


def _clean_color(raw) -> Optional[str]:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def parse_client_message(data) -> ClientMessage:
    """Turn a decoded JSON payload from a match socket into a message."""
    if not isinstance(data, dict):
        raise InvalidMessage("message must be a JSON object")

    message_type = data.get("type")

    if message_type == "join":
        player_data = data.get("playerData") or {}
        if not isinstance(player_data, dict):
            raise InvalidMessage("playerData must be an object")
        match_id = data.get("matchId")
        if match_id is not None and not isinstance(match_id, str):
            raise InvalidMessage("matchId must be a string")
        return JoinRequest(
            match_id=match_id,
            name=_clean_name(player_data.get("name")),
            color=_clean_color(player_data.get("color")),
        )
    elif message_type == "turn":
        try:
            return SetHeading(Direction(data.get("dir")))
        except ValueError:
            raise InvalidMessage(f"unknown direction {data.get('dir')!r}") from None
    elif message_type == "leave":
        return Leave()

    raise InvalidMessage(f"unknown message type {message_type!r}")


def parse_queue_request(data) -> QueueRequest:
    """Turn the first lobby payload into a queue request."""
    if not isinstance(data, dict) or data.get("type", "queue") != "queue":
        raise InvalidMessage("expected a queue request")
    return QueueRequest(
        name=_clean_name(data.get("name")),
        color=_clean_color(data.get("color")),
    )
