"""Background search worker.

Runs as its own process. Messages arrive on stdin (one JSON object per line),
are decoded by a reader thread into the inbox, and are applied by the main
loop only between search rounds. Outgoing messages and ``info string`` log
lines are written to stdout.
"""

from __future__ import annotations

import argparse
import io
import math
import sys
import threading
import time
from typing import Callable, List, Optional, TextIO

from options import OptionPresets, Options, merge_options
from protocol import (
    Channel,
    DoAction,
    Message,
    NewGame,
    ProtocolError,
    RoundMetrics,
    SetOptions,
    Stats,
    decode_message,
    encode_message,
)
from search import MonteCarloSearcher


def _ensure_line_buffered_stdout() -> None:
    stdout = sys.stdout
    if isinstance(stdout, io.TextIOBase) and getattr(stdout, "line_buffering", False):
        return
    buffer = getattr(stdout, "buffer", None)
    if buffer is None:
        return
    sys.stdout = io.TextIOWrapper(buffer, line_buffering=True)


def _monotonic_ms() -> float:
    return time.perf_counter() * 1000.0


class SearchScheduler:
    """Drives the searcher in batches sized to fill ``target_round_time``.

    All durations are milliseconds. ``run_round`` performs one round and
    returns the messages it wants delivered to the interactive side; it never
    touches the inbox, so no message is processed mid-batch.
    """

    def __init__(
        self,
        searcher,
        *,
        clock_ms: Callable[[], float] = _monotonic_ms,
        logger: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.searcher = searcher
        self._clock_ms = clock_ms
        self._log = logger or (lambda message: None)

        self.steps_per_round = 1
        self.sim_time = 0.0
        self.total_sims = 0
        self.last_metrics: Optional[RoundMetrics] = None
        self.game = 0
        self.halted = False

    def reset(self, game: int = 0) -> None:
        self.searcher.reset()
        self.game = game
        self.sim_time = 0.0
        self.total_sims = 0
        self.last_metrics = None
        self.halted = False

    def halt(self, reason: str) -> None:
        self.halted = True
        self._log(f"search halted: {reason}")

    def apply_action(self, action: int) -> None:
        self.searcher.do_action(action)
        self.sim_time = 0.0

    def is_active(self, options: Options) -> bool:
        return options.simulation_enabled and not self.halted and not self.searcher.is_game_over()

    def run_round(self, options: Options) -> List[Message]:
        if not self.is_active(options):
            return []

        steps = self.steps_per_round
        start = self._clock_ms()
        for _ in range(steps):
            self.searcher.do_search_step(options.simulations_per_step)
        elapsed = self._clock_ms() - start

        round_sim_count = steps * options.simulations_per_step
        if elapsed > 0:
            self.steps_per_round = max(1, math.floor(options.target_round_time / (elapsed / steps)))
            sim_rate = round_sim_count / (elapsed / 1000.0)
        else:
            self._log("round time not measurable; keeping steps_per_round")
            elapsed = 0.0
            sim_rate = 0.0

        self.total_sims += round_sim_count
        self.sim_time += elapsed
        metrics = RoundMetrics(
            sim_time=self.sim_time,
            total_sims=self.total_sims,
            round_sim_count=round_sim_count,
            sim_rate=sim_rate,
        )
        self.last_metrics = metrics

        outgoing: List[Message] = []
        stats = self.searcher.get_best_action()
        if stats is None:
            return outgoing

        ply = self.searcher.ply
        outgoing.append(Stats(stats=stats, metrics=metrics, ply=ply, game=self.game))

        player = self.searcher.current_player()
        if self.sim_time >= options.thinking_time and options.playing_for.get(player, False):
            self._log(f"committing action {stats.action} for {player.value} after {self.sim_time:.0f}ms")
            self.apply_action(stats.action)
            outgoing.append(DoAction(action=stats.action, ply=ply, game=self.game))

        return outgoing


class WorkerEngine:
    def __init__(
        self,
        *,
        options: Optional[Options] = None,
        searcher=None,
        clock_ms: Callable[[], float] = _monotonic_ms,
        seed: int = 0,
        debug: bool = False,
        output: Optional[TextIO] = None,
    ) -> None:
        self.options = options if options is not None else OptionPresets.resolve("balanced")
        self.debug = debug
        self.running = True
        self.inbox = Channel()
        self._output = output
        self._reader_thread: Optional[threading.Thread] = None

        self.scheduler = SearchScheduler(
            searcher if searcher is not None else MonteCarloSearcher(seed=seed),
            clock_ms=clock_ms,
            logger=self._log_debug,
        )

        self.dispatch_table = {
            NewGame: self.handle_new_game,
            SetOptions: self.handle_set_options,
            DoAction: self.handle_do_action,
        }

    def _write(self, line: str) -> None:
        stream = self._output or sys.stdout
        stream.write(line + "\n")
        stream.flush()

    def _log_debug(self, message: str) -> None:
        if not self.debug:
            return
        for line in message.splitlines():
            self._write(f"info string {line}")

    def send(self, message: Message) -> None:
        self._write(encode_message(message))

    def start(self, stream: Optional[TextIO] = None) -> None:
        _ensure_line_buffered_stdout()
        self._write("info string worker ready")
        self._reader_thread = threading.Thread(
            target=self.reader, args=(stream or sys.stdin,), daemon=True
        )
        self._reader_thread.start()
        self.run_loop()

    def reader(self, stream: TextIO) -> None:
        """Decode incoming lines into the inbox until the stream closes."""

        for raw in stream:
            line = raw.strip()
            if not line:
                continue
            try:
                message = decode_message(line)
            except ProtocolError as exc:
                self._write(f"info string Dropping malformed message: {exc}")
                continue
            if message is None:
                self._log_debug(f"ignoring unknown message kind: {line}")
                continue
            self.inbox.send(message)
        self.inbox.close()

    def process_inbox(self) -> int:
        messages = self.inbox.drain()
        for message in messages:
            self.handle_message(message)
        return len(messages)

    def handle_message(self, message: Message) -> None:
        handler = self.dispatch_table.get(type(message), self.handle_unknown)
        try:
            handler(message)
        except Exception as exc:
            self._write(f"info string Error processing message: {exc}")

    def handle_unknown(self, message: Message) -> None:
        self._log_debug(f"ignoring message: {message!r}")

    def handle_new_game(self, message: NewGame) -> None:
        self.scheduler.reset(message.game)
        self._log_debug(f"new game {message.game}: search tree reset")

    def handle_set_options(self, message: SetOptions) -> None:
        merge_options(self.options, message.options, logger=self._log_debug)

    def handle_do_action(self, message: DoAction) -> None:
        if message.game != self.scheduler.game:
            self._log_debug(f"ignoring action {message.action} from game {message.game}")
            return
        if self.scheduler.halted:
            self._log_debug(f"ignoring action {message.action}; waiting for new_game")
            return

        board = self.scheduler.searcher.board
        if message.ply != board.ply or not board.is_legal(message.action):
            self._write(
                f"info string Board mirror diverged at ply {board.ply} "
                f"(action {message.action}, sender ply {message.ply})"
            )
            self.scheduler.halt("mirror divergence")
            return
        self.scheduler.apply_action(message.action)

    def step(self) -> List[Message]:
        """One cooperative iteration: apply queued messages, then run one round."""

        self.process_inbox()
        outgoing = self.scheduler.run_round(self.options)
        for message in outgoing:
            self.send(message)
        return outgoing

    def run_loop(self) -> None:
        while self.running:
            self.process_inbox()
            if self.inbox.closed and not len(self.inbox):
                self.running = False
                break

            if not self.scheduler.is_active(self.options):
                self.inbox.wait(self.options.target_round_time / 1000.0)
                continue

            try:
                outgoing = self.scheduler.run_round(self.options)
            except Exception as exc:
                self._write(f"info string Error during search round: {exc}")
                self.scheduler.halt(str(exc))
                continue
            for message in outgoing:
                self.send(message)
        self._write("info string Worker shutting down")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Monte Carlo search worker")
    parser.add_argument("--preset", default="balanced", choices=OptionPresets.names())
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--debug", action="store_true", help="Emit info string debug lines")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    WorkerEngine(
        options=OptionPresets.resolve(args.preset),
        seed=args.seed,
        debug=args.debug,
    ).start()


if __name__ == "__main__":
    main()
