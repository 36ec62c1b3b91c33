"""Worker-side tuning options and the merge rule for incoming updates."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Callable, Dict, List, Optional

from protocol import OptionUpdate, OptionValue, SetValue, Toggle
from uttt_logic import PLAYERS, PlayerMark


def _default_playing_for() -> Dict[PlayerMark, bool]:
    return {player: False for player in PLAYERS}


@dataclass
class Options:
    target_round_time: float = 100.0
    simulations_per_step: int = 50
    simulation_enabled: bool = False
    thinking_time: float = 10000.0
    playing_for: Dict[PlayerMark, bool] = field(default_factory=_default_playing_for)

    def copy(self) -> "Options":
        return replace(self, playing_for=dict(self.playing_for))


class OptionPresets:
    PRESETS: Dict[str, Options] = {
        "balanced": Options(),
        "fast": Options(simulations_per_step=25, thinking_time=2000.0),
        "strong": Options(target_round_time=150.0, simulations_per_step=100, thinking_time=20000.0),
    }

    @classmethod
    def resolve(cls, preset: str) -> Options:
        if preset not in cls.PRESETS:
            raise ValueError(f"Unknown options preset '{preset}'")
        return cls.PRESETS[preset].copy()

    @classmethod
    def names(cls) -> List[str]:
        return sorted(cls.PRESETS)


_SCALAR_FIELDS = {
    "target_round_time": float,
    "simulations_per_step": int,
    "simulation_enabled": bool,
    "thinking_time": float,
}
_POSITIVE_FIELDS = {"target_round_time", "simulations_per_step"}


def _coerce(name: str, raw: object, kind: type) -> object:
    if kind is bool:
        if not isinstance(raw, bool):
            raise TypeError(f"{name} expects a boolean, got {raw!r}")
        return raw
    # bool is an int subclass; reject it for numeric fields
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise TypeError(f"{name} expects a number, got {raw!r}")
    if kind is int and not float(raw).is_integer():
        raise TypeError(f"{name} expects a whole number, got {raw!r}")
    value = kind(raw)
    if name in _POSITIVE_FIELDS and value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def _apply(name: str, current: object, value: OptionValue, kind: type) -> object:
    if isinstance(value, Toggle):
        if kind is not bool:
            raise TypeError(f"{name} cannot be toggled")
        return not current
    return _coerce(name, value.value, kind)


def merge_options(
    options: Options,
    update: OptionUpdate,
    *,
    logger: Optional[Callable[[str], None]] = None,
) -> Options:
    """Merge a partial update into ``options`` in place and return it.

    Unknown field names and values of the wrong type are skipped; the rest of
    the update still applies.
    """

    log = logger or (lambda message: None)
    known = {item.name for item in fields(Options)}

    for name, value in update.items():
        if name not in known:
            log(f"ignoring unknown option '{name}'")
            continue

        try:
            if name == "playing_for":
                _merge_playing_for(options, value, log)
            else:
                kind = _SCALAR_FIELDS[name]
                setattr(options, name, _apply(name, getattr(options, name), value, kind))
        except (TypeError, ValueError) as exc:
            log(f"ignoring option '{name}': {exc}")
            continue
        log(f"option {name} -> {getattr(options, name)}")

    return options


def _merge_playing_for(options: Options, value: OptionValue, log: Callable[[str], None]) -> None:
    if isinstance(value, Toggle):
        raise TypeError("playing_for cannot be toggled as a whole")

    marks = value.value
    if not isinstance(marks, dict):
        raise TypeError(f"playing_for expects a mapping, got {marks!r}")

    for mark_name, mark_value in marks.items():
        try:
            mark = PlayerMark(mark_name)
        except ValueError:
            log(f"ignoring unknown player '{mark_name}'")
            continue
        if not isinstance(mark_value, (SetValue, Toggle)):
            mark_value = SetValue(mark_value)
        try:
            options.playing_for[mark] = _apply(
                f"playing_for.{mark.value}", options.playing_for[mark], mark_value, bool
            )
        except TypeError as exc:
            log(f"ignoring option playing_for.{mark.value}: {exc}")
