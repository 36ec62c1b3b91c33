import random

import pytest

import search
from search import MonteCarloSearcher
from uttt_logic import Board, IllegalActionError, PlayerMark, encode_action

X = PlayerMark.X
O = PlayerMark.O


def winning_position() -> Board:
    """X takes the top meta row by playing the top-right cell of sub-board 2."""

    board = Board()
    board.winners[0] = X
    board.winners[1] = X
    board.cells[2] = [X, X, None, O, O, None, None, None, None]
    board.active_board = 2
    board._update_available_actions()
    return board


def test_simulate_scores_every_playout() -> None:
    total, points = search.simulate(random.Random(3), Board(), 4)

    assert total == search.WIN_POINTS * 4
    assert set(points) == {X, O}
    # A playout adds WIN_POINTS to the winner or DRAW_POINTS to both players.
    assert 0 < sum(points.values()) <= total


def test_simulate_from_finished_game_credits_winner() -> None:
    board = winning_position()
    board.do_action_mut(encode_action(2, 2))

    total, points = search.simulate(random.Random(0), board, 3)

    assert total == 30
    assert points == {X: 30, O: 0}


def test_fresh_searcher_has_no_best_action() -> None:
    searcher = MonteCarloSearcher()
    assert searcher.get_best_action() is None
    assert searcher.node_count == 1

    # The first step only rates the root; children appear on the second.
    searcher.do_search_step(2)
    assert searcher.get_best_action() is None
    searcher.do_search_step(2)
    assert searcher.node_count == 82


def test_best_action_is_legal_and_reports_counts() -> None:
    searcher = MonteCarloSearcher(seed=7)
    for _ in range(20):
        searcher.do_search_step(2)

    stats = searcher.get_best_action()
    assert stats is not None
    assert searcher.board.is_legal(stats.action)
    assert stats.sims > 0
    assert 0 <= stats.wins <= stats.sims
    assert 0.0 <= stats.winrate <= 1.0


def test_search_is_deterministic_for_a_seed() -> None:
    first = MonteCarloSearcher(seed=11)
    second = MonteCarloSearcher(seed=11)
    for _ in range(15):
        first.do_search_step(2)
        second.do_search_step(2)
    assert first.get_best_action() == second.get_best_action()


def test_search_finds_the_winning_move() -> None:
    searcher = MonteCarloSearcher(winning_position())
    for _ in range(12):
        searcher.do_search_step(5)

    stats = searcher.get_best_action()
    assert stats is not None
    assert stats.action == encode_action(2, 2)
    assert stats.winrate == pytest.approx(1.0)


def test_do_action_reroots_on_expanded_child() -> None:
    searcher = MonteCarloSearcher()
    for _ in range(5):
        searcher.do_search_step(1)
    before = searcher.node_count

    searcher.do_action(encode_action(4, 4))

    assert searcher.ply == 1
    assert searcher.current_player() is O
    assert searcher.board.cells[4][4] is X
    assert searcher.node_count < before


def test_do_action_without_tree_builds_new_root() -> None:
    searcher = MonteCarloSearcher()
    searcher.do_action(encode_action(0, 0))

    assert searcher.node_count == 1
    assert searcher.board.active_board == 0
    assert searcher.get_best_action() is None


def test_do_action_rejects_illegal_move() -> None:
    searcher = MonteCarloSearcher()
    searcher.do_action(encode_action(4, 0))
    with pytest.raises(IllegalActionError):
        searcher.do_action(encode_action(4, 1))
    assert searcher.ply == 1


def test_reset_returns_to_empty_board() -> None:
    searcher = MonteCarloSearcher(seed=5)
    for _ in range(4):
        searcher.do_search_step(1)
    searcher.do_action(encode_action(4, 4))

    searcher.reset()

    assert searcher.board == Board()
    assert searcher.node_count == 1
    assert searcher.is_game_over() is False
