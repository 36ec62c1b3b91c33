"""Messages exchanged between the interactive context and the search worker.

The set of message kinds is closed. Each kind is a frozen record; on the pipe
between the two processes every message travels as one JSON object per line.
Messages from one sender arrive in the order they were sent, but nothing is
promised about interleaving between the two directions, and no message waits
for a reply.
"""

from __future__ import annotations

import json
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Union


class ProtocolError(ValueError):
    """A line could not be decoded into a well-formed message."""


# ---------------------------------------------------------------------------
# Option values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SetValue:
    value: Any


@dataclass(frozen=True)
class Toggle:
    pass


TOGGLE = Toggle()
TOGGLE_TOKEN = "toggle"

OptionValue = Union[SetValue, Toggle]
OptionUpdate = Dict[str, OptionValue]


def _decode_option_value(raw: Any) -> OptionValue:
    if raw == TOGGLE_TOKEN:
        return TOGGLE
    if isinstance(raw, dict):
        return SetValue({key: _decode_option_value(value) for key, value in raw.items()})
    return SetValue(raw)


def _encode_option_value(value: Any) -> Any:
    if isinstance(value, Toggle):
        return TOGGLE_TOKEN
    if isinstance(value, SetValue):
        value = value.value
    if isinstance(value, dict):
        return {str(getattr(key, "value", key)): _encode_option_value(item) for key, item in value.items()}
    return value


# ---------------------------------------------------------------------------
# Payload records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchStats:
    action: int
    sims: int
    wins: int

    @property
    def winrate(self) -> float:
        return self.wins / self.sims if self.sims else 0.0


@dataclass(frozen=True)
class RoundMetrics:
    sim_time: float
    total_sims: int
    round_sim_count: int
    sim_rate: float


# ---------------------------------------------------------------------------
# Message kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NewGame:
    game: int = 0


@dataclass(frozen=True)
class SetOptions:
    options: OptionUpdate
    game: int = 0


@dataclass(frozen=True)
class DoAction:
    action: int
    ply: int = 0
    game: int = 0


@dataclass(frozen=True)
class Stats:
    stats: SearchStats
    metrics: RoundMetrics
    ply: int = 0
    game: int = 0


Message = Union[NewGame, SetOptions, DoAction, Stats]


def _require(payload: Dict[str, Any], key: str, kinds) -> Any:
    if key not in payload:
        raise ProtocolError(f"'{payload.get('type')}' message missing '{key}'")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, kinds):
        raise ProtocolError(f"'{payload.get('type')}' message has invalid '{key}': {value!r}")
    return value


def _require_action(payload: Dict[str, Any]) -> int:
    action = _require(payload, "action", int)
    if not 0 <= action <= 0xFF or (action >> 4) > 8 or (action & 0xF) > 8:
        raise ProtocolError(f"action out of range: {action}")
    return action


def encode_message(message: Message) -> str:
    if isinstance(message, NewGame):
        payload: Dict[str, Any] = {"type": "new_game", "game": message.game}
    elif isinstance(message, SetOptions):
        payload = {
            "type": "set_options",
            "game": message.game,
            "options": {name: _encode_option_value(value) for name, value in message.options.items()},
        }
    elif isinstance(message, DoAction):
        payload = {"type": "do_action", "game": message.game, "ply": message.ply, "action": message.action}
    elif isinstance(message, Stats):
        payload = {
            "type": "stats",
            "game": message.game,
            "ply": message.ply,
            "action": message.stats.action,
            "sims": message.stats.sims,
            "wins": message.stats.wins,
            "sim_time": message.metrics.sim_time,
            "total_sims": message.metrics.total_sims,
            "round_sim_count": message.metrics.round_sim_count,
            "sim_rate": message.metrics.sim_rate,
        }
    else:
        raise ProtocolError(f"cannot encode {message!r}")
    return json.dumps(payload, separators=(",", ":"))


def decode_message(line: str) -> Optional[Message]:
    """Decode one line; returns None for kinds outside the closed set."""

    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid message line: {line!r}") from exc
    if not isinstance(payload, dict):
        raise ProtocolError(f"message must be an object: {line!r}")

    kind = payload.get("type")
    game = payload.get("game", 0)
    if isinstance(game, bool) or not isinstance(game, int):
        raise ProtocolError(f"invalid game id: {game!r}")

    if kind == "new_game":
        return NewGame(game=game)
    if kind == "set_options":
        raw_options = _require(payload, "options", dict)
        return SetOptions(
            options={name: _decode_option_value(value) for name, value in raw_options.items()},
            game=game,
        )
    if kind == "do_action":
        return DoAction(action=_require_action(payload), ply=_require(payload, "ply", int), game=game)
    if kind == "stats":
        return Stats(
            stats=SearchStats(
                action=_require_action(payload),
                sims=_require(payload, "sims", int),
                wins=_require(payload, "wins", int),
            ),
            metrics=RoundMetrics(
                sim_time=float(_require(payload, "sim_time", (int, float))),
                total_sims=_require(payload, "total_sims", int),
                round_sim_count=_require(payload, "round_sim_count", int),
                sim_rate=float(_require(payload, "sim_rate", (int, float))),
            ),
            ply=_require(payload, "ply", int),
            game=game,
        )
    return None


def is_message_line(line: str) -> bool:
    return line.startswith("{")


class Channel:
    """FIFO mailbox for one direction of the protocol.

    ``send`` may be called from any thread. The consumer takes messages only
    through ``drain``, at points of its own choosing.
    """

    def __init__(self) -> None:
        self._messages: Deque[Message] = deque()
        self._condition = threading.Condition()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def send(self, message: Message) -> bool:
        with self._condition:
            if self._closed:
                return False
            self._messages.append(message)
            self._condition.notify_all()
            return True

    def drain(self) -> List[Message]:
        with self._condition:
            messages = list(self._messages)
            self._messages.clear()
            return messages

    def wait(self, timeout: Optional[float]) -> bool:
        """Wait up to ``timeout`` seconds for a message; True when one is queued."""

        with self._condition:
            if not self._messages and not self._closed:
                self._condition.wait(timeout)
            return bool(self._messages)

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def __len__(self) -> int:
        with self._condition:
            return len(self._messages)
