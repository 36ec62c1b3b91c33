import pytest

from options import OptionPresets, Options, merge_options
from protocol import TOGGLE, SetValue
from uttt_logic import PlayerMark


def test_defaults_leave_search_disabled() -> None:
    options = Options()
    assert options.simulation_enabled is False
    assert options.target_round_time == 100.0
    assert options.thinking_time == 10000.0
    assert options.playing_for == {PlayerMark.X: False, PlayerMark.O: False}


def test_set_replaces_only_named_fields() -> None:
    options = Options()
    merge_options(options, {"thinking_time": SetValue(500), "simulation_enabled": SetValue(True)})

    assert options.thinking_time == 500.0
    assert options.simulation_enabled is True
    assert options.target_round_time == 100.0
    assert options.simulations_per_step == 50


def test_toggle_twice_restores_the_flag() -> None:
    options = Options()
    merge_options(options, {"simulation_enabled": TOGGLE})
    assert options.simulation_enabled is True
    merge_options(options, {"simulation_enabled": TOGGLE})
    assert options.simulation_enabled is False


def test_empty_update_is_a_no_op() -> None:
    options = Options()
    merge_options(options, {})
    assert options == Options()


def test_merge_returns_the_same_instance() -> None:
    options = Options()
    assert merge_options(options, {"thinking_time": SetValue(1)}) is options


def test_unknown_fields_are_logged_and_skipped() -> None:
    messages = []
    options = Options()
    merge_options(
        options,
        {"bogus": SetValue(1), "thinking_time": SetValue(750)},
        logger=messages.append,
    )

    assert options.thinking_time == 750.0
    assert not hasattr(options, "bogus")
    assert any("bogus" in message for message in messages)


@pytest.mark.parametrize(
    "update",
    [
        {"thinking_time": SetValue("soon")},
        {"simulations_per_step": SetValue(0)},
        {"simulations_per_step": SetValue(2.5)},
        {"target_round_time": SetValue(-5)},
        {"thinking_time": SetValue(True)},
        {"simulation_enabled": SetValue(1)},
        {"thinking_time": TOGGLE},
        {"playing_for": TOGGLE},
        {"playing_for": SetValue(True)},
    ],
)
def test_invalid_values_leave_options_unchanged(update) -> None:
    options = Options()
    merge_options(options, update)
    assert options == Options()


def test_playing_for_merges_per_player() -> None:
    options = Options()
    merge_options(options, {"playing_for": SetValue({"O": SetValue(True)})})
    assert options.playing_for == {PlayerMark.X: False, PlayerMark.O: True}

    merge_options(options, {"playing_for": SetValue({PlayerMark.X: TOGGLE, "Z": SetValue(True)})})
    assert options.playing_for == {PlayerMark.X: True, PlayerMark.O: True}


def test_playing_for_accepts_plain_values() -> None:
    options = Options()
    merge_options(options, {"playing_for": SetValue({"X": True, "O": "yes"})})
    assert options.playing_for == {PlayerMark.X: True, PlayerMark.O: False}


def test_presets_resolve_to_independent_copies() -> None:
    fast = OptionPresets.resolve("fast")
    fast.playing_for[PlayerMark.X] = True
    fast.thinking_time = 1.0

    again = OptionPresets.resolve("fast")
    assert again.thinking_time == 2000.0
    assert again.playing_for[PlayerMark.X] is False
    assert OptionPresets.resolve("balanced") == Options()


def test_unknown_preset_raises() -> None:
    with pytest.raises(ValueError):
        OptionPresets.resolve("reckless")
    assert OptionPresets.names() == ["balanced", "fast", "strong"]


def test_whole_float_is_accepted_for_step_count() -> None:
    options = Options()
    merge_options(options, {"simulations_per_step": SetValue(30.0)})
    assert options.simulations_per_step == 30
    assert isinstance(options.simulations_per_step, int)
