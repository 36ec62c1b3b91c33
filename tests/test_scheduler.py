import itertools

import pytest

from engine import SearchScheduler
from options import Options
from protocol import DoAction, SearchStats, Stats
from uttt_logic import Board, PlayerMark, encode_action

X = PlayerMark.X
O = PlayerMark.O
CENTRE = encode_action(4, 4)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ScriptedSearcher:
    """Searcher stand-in whose steps advance a fake clock by scripted costs."""

    def __init__(self, clock: FakeClock, costs, stats=None) -> None:
        self.clock = clock
        self.costs = iter(costs)
        self.stats = stats
        self.board = Board()
        self.steps = []
        self.actions = []
        self.resets = 0

    def do_search_step(self, num_sims: int) -> None:
        self.clock.now += next(self.costs)
        self.steps.append(num_sims)

    def get_best_action(self):
        return self.stats

    def do_action(self, action: int) -> None:
        self.board.do_action_mut(action)
        self.actions.append(action)

    def reset(self) -> None:
        self.board = Board()
        self.resets += 1

    def is_game_over(self) -> bool:
        return self.board.is_game_over()

    def current_player(self) -> PlayerMark:
        return self.board.current_player()

    @property
    def ply(self) -> int:
        return self.board.ply


def make_scheduler(costs, stats=None, game=1):
    clock = FakeClock()
    searcher = ScriptedSearcher(clock, costs, stats)
    scheduler = SearchScheduler(searcher, clock_ms=clock)
    scheduler.game = game
    return scheduler, searcher


def enabled_options(**overrides) -> Options:
    options = Options(simulation_enabled=True, simulations_per_step=1000)
    for name, value in overrides.items():
        setattr(options, name, value)
    return options


def test_batch_size_adapts_to_step_cost() -> None:
    # 40ms for the first step, then 45ms per step.
    scheduler, searcher = make_scheduler(itertools.chain([40.0], itertools.repeat(45.0)))
    options = enabled_options()

    scheduler.run_round(options)
    assert scheduler.steps_per_round == 2
    assert scheduler.last_metrics.round_sim_count == 1000

    scheduler.run_round(options)
    assert len(searcher.steps) == 3
    assert scheduler.steps_per_round == 2
    assert scheduler.last_metrics.sim_time == pytest.approx(130.0)
    assert scheduler.last_metrics.total_sims == 3000
    assert scheduler.last_metrics.sim_rate == pytest.approx(2000 / 0.09)


def test_unmeasurable_round_keeps_batch_size() -> None:
    scheduler, _ = make_scheduler(itertools.repeat(0.0))
    scheduler.steps_per_round = 3

    scheduler.run_round(enabled_options())

    assert scheduler.steps_per_round == 3
    assert scheduler.last_metrics.sim_rate == 0.0
    assert scheduler.sim_time == 0.0
    assert scheduler.total_sims == 3000


def test_batch_size_never_drops_below_one() -> None:
    scheduler, _ = make_scheduler(itertools.repeat(500.0))
    scheduler.run_round(enabled_options())
    assert scheduler.steps_per_round == 1


def test_round_duration_converges_on_target() -> None:
    scheduler, _ = make_scheduler(itertools.repeat(7.0))
    options = enabled_options()

    durations = []
    for _ in range(30):
        before = scheduler.sim_time
        scheduler.run_round(options)
        durations.append(scheduler.sim_time - before)

    assert scheduler.steps_per_round == 14
    average = sum(durations[-20:]) / 20
    assert abs(average - options.target_round_time) / options.target_round_time < 0.05


def test_batch_size_stays_bounded_for_noisy_costs() -> None:
    scheduler, _ = make_scheduler(itertools.cycle([8.0, 12.0, 9.0, 11.0]))
    options = enabled_options()

    for _ in range(40):
        scheduler.run_round(options)
        assert 1 <= scheduler.steps_per_round <= 13
    assert scheduler.steps_per_round >= 8


def test_round_without_stats_emits_nothing() -> None:
    scheduler, searcher = make_scheduler(itertools.repeat(10.0))
    assert scheduler.run_round(enabled_options()) == []
    assert searcher.steps == [1000]
    assert scheduler.total_sims == 1000


def test_round_reports_stats_with_ply_and_game() -> None:
    stats = SearchStats(action=CENTRE, sims=100, wins=60)
    scheduler, _ = make_scheduler(itertools.repeat(10.0), stats=stats, game=4)

    outgoing = scheduler.run_round(enabled_options())

    assert len(outgoing) == 1
    message = outgoing[0]
    assert isinstance(message, Stats)
    assert message.stats == stats
    assert message.ply == 0
    assert message.game == 4
    assert message.metrics == scheduler.last_metrics


def test_thinking_time_reached_commits_action() -> None:
    stats = SearchStats(action=CENTRE, sims=100, wins=60)
    scheduler, searcher = make_scheduler(itertools.repeat(40.0), stats=stats)
    scheduler.sim_time = 480.0
    options = enabled_options(thinking_time=500.0, playing_for={X: True, O: False})

    outgoing = scheduler.run_round(options)

    assert [type(message) for message in outgoing] == [Stats, DoAction]
    assert outgoing[1] == DoAction(action=CENTRE, ply=0, game=1)
    assert searcher.actions == [CENTRE]
    assert scheduler.sim_time == 0.0


def test_no_commit_for_player_not_played_by_ai() -> None:
    stats = SearchStats(action=CENTRE, sims=100, wins=60)
    scheduler, searcher = make_scheduler(itertools.repeat(40.0), stats=stats)
    scheduler.sim_time = 480.0
    options = enabled_options(thinking_time=500.0, playing_for={X: False, O: True})

    outgoing = scheduler.run_round(options)

    assert [type(message) for message in outgoing] == [Stats]
    assert searcher.actions == []
    assert scheduler.sim_time == pytest.approx(520.0)


def test_no_commit_before_thinking_time() -> None:
    stats = SearchStats(action=CENTRE, sims=100, wins=60)
    scheduler, searcher = make_scheduler(itertools.repeat(40.0), stats=stats)
    options = enabled_options(thinking_time=500.0, playing_for={X: True, O: True})

    outgoing = scheduler.run_round(options)

    assert [type(message) for message in outgoing] == [Stats]
    assert searcher.actions == []


def test_inactive_scheduler_runs_no_steps() -> None:
    scheduler, searcher = make_scheduler(itertools.repeat(10.0))

    assert scheduler.run_round(Options(simulation_enabled=False)) == []

    scheduler.halt("test")
    assert scheduler.run_round(enabled_options()) == []
    assert searcher.steps == []
    assert scheduler.is_active(enabled_options()) is False


def test_reset_clears_counters_and_halt() -> None:
    scheduler, searcher = make_scheduler(itertools.repeat(10.0))
    scheduler.run_round(enabled_options())
    scheduler.halt("test")

    scheduler.reset(7)

    assert searcher.resets == 1
    assert scheduler.game == 7
    assert scheduler.sim_time == 0.0
    assert scheduler.total_sims == 0
    assert scheduler.last_metrics is None
    assert scheduler.halted is False


def test_applied_action_restarts_thinking_clock() -> None:
    scheduler, searcher = make_scheduler(itertools.repeat(10.0))
    scheduler.sim_time = 300.0

    scheduler.apply_action(CENTRE)

    assert scheduler.sim_time == 0.0
    assert searcher.actions == [CENTRE]
