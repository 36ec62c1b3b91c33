# MAIN
import argparse
import os
import subprocess
import sys
import threading
import time
from typing import Callable, List, Optional

from PySide6.QtCore import QProcess
from PySide6.QtWidgets import QApplication

import uttt_logic
from coordinator import GameCoordinator, PlayerRole
from options import OptionPresets
from protocol import (
    Channel,
    DoAction,
    Message,
    ProtocolError,
    RoundMetrics,
    SearchStats,
    SetValue,
    decode_message,
    encode_message,
    is_message_line,
)
from utils import cleanup, debug_text, format_action, info_text, received_text, sending_text
from uttt_logic import PlayerMark

WORKER_LABEL = "[Worker]"
ROLE_CHOICES = [role.value for role in PlayerRole]


def parse_args(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("-dev", action="store_true", help="Enable debug mode")
    parser.add_argument(
        "--preset",
        default="balanced",
        choices=OptionPresets.names(),
        help="Search options preset handed to the worker",
    )
    parser.add_argument(
        "--worker",
        dest="worker",
        help="Path to the worker script (defaults to engine.py next to this file)",
    )
    parser.add_argument("--seed", type=int, default=0, help="Random seed for the worker's search")
    parser.add_argument(
        "--thinking-time",
        type=float,
        help="Milliseconds of search before the AI commits a move",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Play AI against AI in the terminal instead of launching the GUI",
    )
    parser.add_argument("--x", default=PlayerRole.AI.value, choices=ROLE_CHOICES, help="Headless role for X")
    parser.add_argument("--o", default=PlayerRole.AI.value, choices=ROLE_CHOICES, help="Headless role for O")
    parser.add_argument(
        "--max-moves",
        type=int,
        default=81,
        help="Stop headless play after this many moves",
    )
    return parser.parse_args(argv)


def resolve_worker_path(default_path: str, override: Optional[str]) -> str:
    if not override:
        return default_path
    candidate = os.path.abspath(override)
    if not os.path.exists(candidate):
        print(info_text(f"Worker path not found: {candidate}. Falling back to {default_path}"))
        return default_path
    return candidate


def build_worker_arguments(args) -> List[str]:
    worker_args = ["--preset", args.preset, "--seed", str(args.seed)]
    if args.dev:
        worker_args.append("--debug")
    return worker_args


def describe_message(message: Message) -> str:
    if isinstance(message, DoAction):
        return f"do_action {format_action(message.action)} ply={message.ply} game={message.game}"
    return encode_message(message)


def process_worker_output_line(
    line: str,
    coordinator: GameCoordinator,
    *,
    dev: bool,
    emit: Callable[[str], None],
) -> Optional[Message]:
    if not is_message_line(line):
        emit(line)
        return None

    try:
        message = decode_message(line)
    except ProtocolError as exc:
        emit(f"malformed message dropped: {exc}")
        return None
    if message is None:
        if dev:
            emit(f"unknown message ignored: {line}")
        return None

    if isinstance(message, DoAction) or dev:
        emit(describe_message(message))
    coordinator.receive_worker_message(message)
    return message


def worker_output_processor(proc: QProcess, coordinator: GameCoordinator, *, dev: bool = False) -> None:
    def emit(line: str) -> None:
        print(received_text(f"{WORKER_LABEL} {line}"))

    while proc.canReadLine():
        output = bytes(proc.readLine()).decode().strip()
        if not output:
            continue
        process_worker_output_line(output, coordinator, dev=dev, emit=emit)


def send_to_worker(proc: QProcess, message: Message) -> None:
    print(sending_text(f"{WORKER_LABEL} {describe_message(message)}"))
    proc.write((encode_message(message) + "\n").encode())
    proc.waitForBytesWritten()


def start_worker_process(path: str, arguments: List[str]) -> QProcess:
    proc = QProcess()
    proc.setProcessChannelMode(QProcess.MergedChannels)
    proc.start(sys.executable, [path, *arguments])
    if not proc.waitForStarted(5000):
        print(info_text(f"Worker failed to start within timeout: {path}"))
    return proc


class HeadlessWorkerProcess:
    """Minimal subprocess wrapper for headless play."""

    def __init__(self, path: str, arguments: List[str], *, workdir: str) -> None:
        self.path = path
        self._proc = subprocess.Popen(
            [sys.executable, path, *arguments],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            cwd=workdir,
        )
        self._write_lock = threading.Lock()

    def send(self, message: Message) -> None:
        with self._write_lock:
            if not self._proc.stdin:
                return
            try:
                self._proc.stdin.write(encode_message(message) + "\n")
                self._proc.stdin.flush()
            except BrokenPipeError:
                pass

    def readline(self) -> str:
        if not self._proc.stdout:
            return ""
        return self._proc.stdout.readline()

    def poll(self) -> Optional[int]:
        return self._proc.poll()

    def stop(self, timeout: float = 2.0) -> None:
        if self._proc.stdin:
            try:
                self._proc.stdin.close()
            except OSError:
                pass
        try:
            self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self._proc.wait(timeout=1.0)


class HeadlessGameUI:
    """Terminal stand-in for the GUI's display hooks."""

    def __init__(self, coordinator: GameCoordinator, *, quiet: bool = False) -> None:
        self.coordinator = coordinator
        self.quiet = quiet
        self.info_message = ""
        self._last_report: Optional[float] = None

    def _log(self, message: str) -> None:
        if not self.quiet and message:
            print(info_text(message))

    def update_stats(self, stats: SearchStats, metrics: RoundMetrics) -> None:
        now = time.monotonic()
        if self._last_report is not None and now - self._last_report < 1.0:
            return
        self._last_report = now
        self._log(
            f"thinking {metrics.sim_time / 1000:.1f}s best={format_action(self.coordinator.suggested_action())} "
            f"winrate={stats.winrate:.0%} sims={metrics.total_sims // 1000}k rate={metrics.sim_rate:.0f}/s"
        )

    def render_board(self) -> None:
        pass

    def update_game_info(self) -> None:
        board = self.coordinator.board
        if board.move_history:
            mover = "X" if board.ply % 2 == 1 else "O"
            self._log(f"move {board.ply}: {mover} plays {format_action(board.move_history[-1])}")

    def set_info_message(self, message: str) -> None:
        self.info_message = message
        self._log(message)


def run_headless(args, script_dir: str) -> uttt_logic.Board:
    worker_path = resolve_worker_path(os.path.join(script_dir, "engine.py"), args.worker)
    worker = HeadlessWorkerProcess(worker_path, build_worker_arguments(args), workdir=script_dir)
    inbox = Channel()
    stop_event = threading.Event()

    def send(message: Message) -> None:
        if args.dev:
            print(sending_text(f"{WORKER_LABEL} {describe_message(message)}"))
        worker.send(message)

    coordinator = GameCoordinator(send, logger=lambda message: print(info_text(message)))
    ui = HeadlessGameUI(coordinator)
    coordinator.attach_ui(ui)

    def reader() -> None:
        while not stop_event.is_set():
            line = worker.readline()
            if line == "":
                if worker.poll() is not None:
                    break
                time.sleep(0.01)
                continue
            line = line.strip()
            if not line:
                continue
            if not is_message_line(line):
                if args.dev:
                    print(received_text(f"{WORKER_LABEL} {line}"))
                continue
            try:
                message = decode_message(line)
            except ProtocolError as exc:
                print(info_text(f"Malformed worker message dropped: {exc}"))
                continue
            if message is not None:
                inbox.send(message)
        inbox.close()

    thread = threading.Thread(target=reader, daemon=True)
    thread.start()

    assignment = {PlayerMark.X: PlayerRole(args.x), PlayerMark.O: PlayerRole(args.o)}
    if PlayerRole.HUMAN in assignment.values():
        print(info_text("Headless play has no human input; both marks are played by the AI"))
        assignment = {mark: PlayerRole.AI for mark in assignment}

    try:
        coordinator.start_game(assignment)
        if args.thinking_time is not None:
            coordinator.set_worker_options({"thinking_time": SetValue(args.thinking_time)})

        board = coordinator.board
        while not uttt_logic.is_game_over(board) and board.ply < args.max_moves and not coordinator.diverged:
            if inbox.closed and not len(inbox):
                print(info_text("Worker terminated unexpectedly"))
                break
            inbox.wait(0.1)
            for message in inbox.drain():
                coordinator.receive_worker_message(message)
    except KeyboardInterrupt:
        print(info_text("Headless game interrupted by user"))
    finally:
        stop_event.set()
        worker.stop()
        thread.join(timeout=1.0)

    board = coordinator.board
    print(uttt_logic.render_text(board))
    print(info_text(f"Result: {uttt_logic.get_game_result(board)} after {board.ply} moves"))
    return board


def main(argv=None):
    args = parse_args(argv)
    script_dir = os.path.dirname(os.path.abspath(__file__))

    if args.headless:
        run_headless(args, script_dir)
        return

    from gui import UltimateTicTacToeGUI  # Local import keeps headless runs free of widget setup

    dev = args.dev
    app = QApplication(sys.argv)

    worker_path = resolve_worker_path(os.path.join(script_dir, "engine.py"), args.worker)
    proc = start_worker_process(worker_path, build_worker_arguments(args))
    print(info_text(f"Worker -> {worker_path}"))

    coordinator = GameCoordinator(
        lambda message: send_to_worker(proc, message),
        logger=lambda message: print(info_text(message)),
    )
    gui = UltimateTicTacToeGUI(coordinator, dev=dev)
    coordinator.attach_ui(gui)
    proc.readyReadStandardOutput.connect(
        lambda: worker_output_processor(proc, coordinator, dev=dev)
    )

    if args.thinking_time is not None:
        coordinator.set_worker_options({"thinking_time": SetValue(args.thinking_time)})

    def shutdown():
        if proc.state() != QProcess.NotRunning:
            proc.closeWriteChannel()
            if not proc.waitForFinished(2000) and dev:
                print(debug_text("Worker did not exit after stdin closed"))
        cleanup(proc, None, app, dev=dev, quit_app=False)

    app.aboutToQuit.connect(shutdown)

    gui.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
