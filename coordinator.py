"""Interactive-side game coordination.

The coordinator owns the interactive copy of the board and is the only code
that mutates it. Human moves are applied locally and forwarded to the worker;
worker moves are replayed locally so both copies see the same action
sequence.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Protocol

from protocol import (
    TOGGLE,
    DoAction,
    Message,
    NewGame,
    OptionUpdate,
    RoundMetrics,
    SearchStats,
    SetOptions,
    SetValue,
    Stats,
)
from uttt_logic import PLAYERS, Board, PlayerMark


class PlayerRole(str, Enum):
    HUMAN = "human"
    AI = "ai"


PlayerAssignment = Dict[PlayerMark, PlayerRole]


class MirrorDivergenceError(RuntimeError):
    """The worker's board and the local board no longer agree."""


class _GameUI(Protocol):
    """Display hooks the coordinator pushes updates to."""

    def update_stats(self, stats: SearchStats, metrics: RoundMetrics) -> None:
        ...

    def update_game_info(self) -> None:
        ...

    def render_board(self) -> None:
        ...

    def set_info_message(self, message: str) -> None:
        ...


SendMessage = Callable[[Message], None]


class GameCoordinator:
    def __init__(
        self,
        send: SendMessage,
        ui: Optional[_GameUI] = None,
        *,
        board: Optional[Board] = None,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._send = send
        self._ui = ui
        self._log = logger or (lambda message: None)

        self.board = board if board is not None else Board()
        self.players: PlayerAssignment = {player: PlayerRole.HUMAN for player in PLAYERS}
        self.game = 0
        self.last_stats: Optional[SearchStats] = None
        self.last_metrics: Optional[RoundMetrics] = None
        self._suggestion: Optional[int] = None
        self._diverged = False

    def attach_ui(self, ui: _GameUI) -> None:
        self._ui = ui

    @property
    def diverged(self) -> bool:
        return self._diverged

    @property
    def current_player_type(self) -> PlayerRole:
        return self.players[self.board.current_player()]

    def suggested_action(self) -> Optional[int]:
        return self._suggestion

    def visible_suggestion(self) -> Optional[int]:
        # Human players don't get to see the search's pick.
        if self.current_player_type is not PlayerRole.AI:
            return None
        return self._suggestion

    # ------------------------------------------------------------------
    # Commands from the display layer
    # ------------------------------------------------------------------

    def start_game(self, assignment: Mapping[PlayerMark, PlayerRole]) -> None:
        self.board.reset()
        self.players = {player: PlayerRole(assignment.get(player, PlayerRole.HUMAN)) for player in PLAYERS}
        self.game += 1
        self.last_stats = None
        self.last_metrics = None
        self._suggestion = None
        self._diverged = False

        playing_for = {player: self.players[player] is PlayerRole.AI for player in PLAYERS}
        self._dispatch(NewGame(game=self.game))
        self.set_worker_options(
            {
                "playing_for": SetValue({player: SetValue(flag) for player, flag in playing_for.items()}),
                "simulation_enabled": SetValue(any(playing_for.values())),
            }
        )
        self._log(
            f"Game {self.game} started: X={self.players[PlayerMark.X].value}, O={self.players[PlayerMark.O].value}"
        )
        self._notify_board_changed()

    def handle_click(self, x: float, y: float, board_size: float) -> Optional[int]:
        if self._diverged or self.current_player_type is not PlayerRole.HUMAN:
            return None

        action = self.board.action_for_click(x, y, board_size)
        if action is None:
            return None

        ply = self.board.ply
        self._apply_action(action)
        self._dispatch(DoAction(action=action, ply=ply, game=self.game))
        return action

    def toggle_simulation(self) -> None:
        self.set_worker_options({"simulation_enabled": TOGGLE})

    def set_worker_options(self, options: OptionUpdate) -> None:
        self._dispatch(SetOptions(options=dict(options), game=self.game))

    # ------------------------------------------------------------------
    # Messages from the worker
    # ------------------------------------------------------------------

    def receive_worker_message(self, message: Message) -> None:
        if getattr(message, "game", self.game) != self.game:
            self._log(f"Dropping {type(message).__name__} from game {message.game}")
            return

        if isinstance(message, DoAction):
            try:
                self._on_worker_action(message)
            except MirrorDivergenceError as exc:
                self._mark_diverged(str(exc))
        elif isinstance(message, Stats):
            self._on_stats(message)
        else:
            self._log(f"Ignoring unexpected {type(message).__name__} from worker")

    def _on_worker_action(self, message: DoAction) -> None:
        if self._diverged:
            return
        if message.ply != self.board.ply:
            raise MirrorDivergenceError(
                f"worker played at ply {message.ply} but the board is at ply {self.board.ply}"
            )
        if not self.board.is_legal(message.action):
            raise MirrorDivergenceError(f"worker action {message.action} is not legal here")
        player = self.board.current_player()
        if self.players[player] is not PlayerRole.AI:
            raise MirrorDivergenceError(f"worker moved for {player.value}, which a human plays")
        self._apply_action(message.action)

    def _on_stats(self, message: Stats) -> None:
        self.last_stats = message.stats
        self.last_metrics = message.metrics
        # Stats computed before the latest action describe an old position.
        if message.ply == self.board.ply and not self._diverged:
            self._suggestion = message.stats.action
        if self._ui is not None:
            self._ui.update_stats(message.stats, message.metrics)

    def _mark_diverged(self, reason: str) -> None:
        self._diverged = True
        self._suggestion = None
        self._log(f"Board mirrors diverged: {reason}")
        self.set_worker_options({"simulation_enabled": SetValue(False)})
        if self._ui is not None:
            self._ui.set_info_message("Board out of sync with the AI; start a new game")
        self._notify_board_changed()

    # ------------------------------------------------------------------

    def _apply_action(self, action: int) -> None:
        self.board.do_action_mut(action)
        self._suggestion = None
        self._notify_board_changed()

    def _notify_board_changed(self) -> None:
        if self._ui is None:
            return
        self._ui.render_board()
        self._ui.update_game_info()

    def _dispatch(self, message: Message) -> None:
        self._send(message)
