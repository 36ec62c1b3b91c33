"""Rules engine for Ultimate Tic-Tac-Toe.

An action is a single byte: the high nibble selects the sub-board and the low
nibble the cell inside it, both counted row-major from the top-left corner.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence, Tuple

BOARD_COUNT = 9
CELL_COUNT = 9

_LINES = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


class IllegalActionError(ValueError):
    """Raised when an action is not available on the current board."""


class PlayerMark(str, Enum):
    X = "X"
    O = "O"

    @property
    def opponent(self) -> "PlayerMark":
        return PlayerMark.O if self is PlayerMark.X else PlayerMark.X


PLAYERS = (PlayerMark.X, PlayerMark.O)


def encode_action(outer: int, inner: int) -> int:
    if not (0 <= outer < BOARD_COUNT and 0 <= inner < CELL_COUNT):
        raise IllegalActionError(f"Action out of range: ({outer}, {inner})")
    return (outer << 4) | inner


def decode_action(action: int) -> Tuple[int, int]:
    return action >> 4, action & 0xF


def check_for_winner(cells: Sequence[Optional[PlayerMark]]) -> Optional[PlayerMark]:
    for a, b, c in _LINES:
        if cells[a] is not None and cells[a] == cells[b] == cells[c]:
            return cells[a]
    return None


class Board:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.cells: List[List[Optional[PlayerMark]]] = [
            [None] * CELL_COUNT for _ in range(BOARD_COUNT)
        ]
        self.winners: List[Optional[PlayerMark]] = [None] * BOARD_COUNT
        self.active_board: Optional[int] = None
        self.move_history: List[int] = []
        self._current_player = PlayerMark.X
        self._game_over = False
        self._available_actions: List[int] = []
        self._update_available_actions()

    def copy(self) -> "Board":
        clone = Board.__new__(Board)
        clone.cells = [list(sub_board) for sub_board in self.cells]
        clone.winners = list(self.winners)
        clone.active_board = self.active_board
        clone.move_history = list(self.move_history)
        clone._current_player = self._current_player
        clone._game_over = self._game_over
        clone._available_actions = list(self._available_actions)
        return clone

    @property
    def ply(self) -> int:
        return len(self.move_history)

    def current_player(self) -> PlayerMark:
        return self._current_player

    def is_game_over(self) -> bool:
        return self._game_over

    def available_actions(self) -> Sequence[int]:
        return self._available_actions

    def winner(self) -> Optional[PlayerMark]:
        return check_for_winner(self.winners)

    def is_legal(self, action: int) -> bool:
        return action in self._available_actions

    def _sub_board_open(self, index: int) -> bool:
        return self.winners[index] is None and None in self.cells[index]

    def _update_available_actions(self) -> None:
        self._available_actions = []
        if self._game_over:
            return

        if self.active_board is not None:
            boards = (self.active_board,)
        else:
            boards = tuple(i for i in range(BOARD_COUNT) if self.winners[i] is None)

        for board_i in boards:
            for cell_i, cell in enumerate(self.cells[board_i]):
                if cell is None:
                    self._available_actions.append(encode_action(board_i, cell_i))

    def do_action_mut(self, action: int) -> None:
        if not self.is_legal(action):
            raise IllegalActionError(f"Action {action} is not available")

        board_i, cell_i = decode_action(action)
        self.cells[board_i][cell_i] = self._current_player
        self.move_history.append(action)

        if self.winners[board_i] is None:
            self.winners[board_i] = check_for_winner(self.cells[board_i])
            if self.winners[board_i] is not None and self.winner() is not None:
                # The winner stays the current player once the game is decided.
                self._game_over = True
                self.active_board = None
                self._update_available_actions()
                return

        # A decided or full sub-board frees the next player to move anywhere.
        self.active_board = cell_i if self._sub_board_open(cell_i) else None
        self._current_player = self._current_player.opponent
        self._update_available_actions()

        if not self._available_actions:
            self._game_over = True

    def action_for_click(self, x: float, y: float, board_size: float) -> Optional[int]:
        if board_size <= 0:
            return None
        cell_x = x * 9.0 / board_size
        cell_y = y * 9.0 / board_size
        if cell_x < 0.0 or cell_y < 0.0 or cell_x >= 9.0 or cell_y >= 9.0:
            return None

        outer = int(cell_x // 3) + 3 * int(cell_y // 3)
        inner = int(cell_x % 3) + 3 * int(cell_y % 3)
        action = encode_action(outer, inner)
        return action if self.is_legal(action) else None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Board):
            return NotImplemented
        return (
            self.cells == other.cells
            and self.winners == other.winners
            and self.active_board == other.active_board
            and self._current_player == other._current_player
            and self._game_over == other._game_over
        )

    def __repr__(self) -> str:
        return f"Board(ply={self.ply}, player={self._current_player.value}, over={self._game_over})"


def is_game_over(board: Board) -> bool:
    return board.is_game_over()


def get_game_result(board: Board) -> str:
    if not board.is_game_over():
        return "Game in progress"
    winner = board.winner()
    if winner is None:
        return "Draw"
    return f"{winner.value} wins"


def render_text(board: Board) -> str:
    """Plain-text rendering of the full 9x9 grid for terminal output."""

    rows = []
    for big_row in range(3):
        for small_row in range(3):
            segments = []
            for big_col in range(3):
                sub_board = board.cells[big_row * 3 + big_col]
                cells = sub_board[small_row * 3 : small_row * 3 + 3]
                segments.append(" ".join(cell.value if cell else "." for cell in cells))
            rows.append(" | ".join(segments))
        if big_row < 2:
            rows.append("------+-------+------")
    return "\n".join(rows)
