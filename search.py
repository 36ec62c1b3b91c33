"""Monte Carlo tree search over Ultimate Tic-Tac-Toe positions.

The searcher keeps its own board (the root state of the tree) and is driven
step by step by the worker's scheduler; it never decides on its own when to
commit a move.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from protocol import SearchStats
from uttt_logic import PLAYERS, Board, PlayerMark

EXPLORATION_FACTOR = math.sqrt(2)
WIN_POINTS = 10
DRAW_POINTS = 1


@dataclass
class _Node:
    state: Board
    parent: Optional[int]
    total_points: int = 0
    earned_points: int = 0
    score: float = math.inf
    children: Dict[int, int] = field(default_factory=dict)


def simulate(rng: random.Random, base_state: Board, num_sims: int) -> Tuple[int, Dict[PlayerMark, int]]:
    """Play ``num_sims`` random games from ``base_state`` and tally points per player."""

    points = {player: 0 for player in PLAYERS}
    for _ in range(num_sims):
        state = base_state.copy()
        while True:
            actions = state.available_actions()
            if not actions:
                break
            state.do_action_mut(rng.choice(actions))

        winner = state.winner()
        if winner is not None:
            points[winner] += WIN_POINTS
        else:
            for player in points:
                points[player] += DRAW_POINTS
    return WIN_POINTS * num_sims, points


class MonteCarloSearcher:
    def __init__(self, board: Optional[Board] = None, *, seed: int = 0) -> None:
        self._seed = seed
        self._rng = random.Random(seed)
        self._nodes: Dict[int, _Node] = {}
        self._next_id = 0
        self._root = 0
        self._set_root(board.copy() if board is not None else Board())

    @property
    def board(self) -> Board:
        return self._nodes[self._root].state

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def reset(self) -> None:
        self._rng = random.Random(self._seed)
        self._nodes.clear()
        self._set_root(Board())

    def _new_node(self, state: Board, parent: Optional[int]) -> int:
        node_id = self._next_id
        self._next_id += 1
        self._nodes[node_id] = _Node(state=state, parent=parent)
        return node_id

    def _set_root(self, state: Board) -> None:
        self._root = self._new_node(state, None)

    def _select(self) -> int:
        node_id = self._root
        while True:
            node = self._nodes[node_id]
            if not node.children:
                return node_id
            node_id = max(node.children.values(), key=lambda child: self._nodes[child].score)

    def _expand(self, node_id: int) -> int:
        parent_state = self._nodes[node_id].state
        children = {}
        for action in parent_state.available_actions():
            child_state = parent_state.copy()
            child_state.do_action_mut(action)
            children[action] = self._new_node(child_state, node_id)

        node = self._nodes[node_id]
        node.children = children
        return next(iter(children.values()), node_id)

    def _backpropagate(self, node_id: int, total_points: int, earned_points: Dict[PlayerMark, int]) -> None:
        path: List[int] = []
        current: Optional[int] = node_id
        while current is not None:
            path.append(current)
            current = self._nodes[current].parent

        # Points are credited to the player who moved into each node, i.e. the
        # parent's current player, so walk from the root down.
        root = self._nodes[path[-1]]
        parent_player = root.state.current_player()
        parent_total = root.total_points
        for current in reversed(path):
            node = self._nodes[current]
            node.total_points += total_points
            node.earned_points += earned_points.get(parent_player, 0)

            if parent_total > 0:
                node.score = node.earned_points / node.total_points + EXPLORATION_FACTOR * math.sqrt(
                    math.log(parent_total) / node.total_points
                )

            parent_player = node.state.current_player()
            parent_total = node.total_points

    def do_search_step(self, num_sims: int) -> None:
        node_id = self._select()
        if self._nodes[node_id].total_points > 0:
            node_id = self._expand(node_id)

        total_points, points = simulate(self._rng, self._nodes[node_id].state, num_sims)
        self._backpropagate(node_id, total_points, points)

    def get_best_action(self) -> Optional[SearchStats]:
        root = self._nodes[self._root]
        best: Optional[SearchStats] = None
        best_winrate = -1.0
        for action, child_id in root.children.items():
            child = self._nodes[child_id]
            if child.total_points == 0:
                continue
            winrate = child.earned_points / child.total_points
            if winrate > best_winrate:
                best_winrate = winrate
                best = SearchStats(action=action, sims=child.total_points, wins=child.earned_points)
        return best

    def do_action(self, action: int) -> None:
        root = self._nodes[self._root]
        child_id = root.children.get(action)
        if child_id is not None:
            self._root = child_id
            self._nodes[child_id].parent = None
        else:
            next_state = root.state.copy()
            next_state.do_action_mut(action)
            self._set_root(next_state)
        self._collect_garbage()

    def _collect_garbage(self) -> None:
        reachable = set()
        open_set = [self._root]
        while open_set:
            node_id = open_set.pop()
            reachable.add(node_id)
            open_set.extend(self._nodes[node_id].children.values())

        for node_id in [key for key in self._nodes if key not in reachable]:
            del self._nodes[node_id]

    def is_game_over(self) -> bool:
        return self.board.is_game_over()

    def current_player(self) -> PlayerMark:
        return self.board.current_player()

    @property
    def ply(self) -> int:
        return self.board.ply
