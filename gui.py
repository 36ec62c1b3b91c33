# GUI
import sys

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QColor, QFont, QPainter, QPalette, QPen
from PySide6.QtWidgets import (
    QApplication,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

import utils
import uttt_logic
from coordinator import GameCoordinator, PlayerRole
from uttt_logic import BOARD_COUNT, CELL_COUNT, PlayerMark, decode_action

MARK_COLORS = {PlayerMark.X: QColor("#e5484d"), PlayerMark.O: QColor("#3e63dd")}
ACTIVE_COLORS = {PlayerMark.X: QColor(229, 72, 77, 60), PlayerMark.O: QColor(62, 99, 221, 60)}
GRID_COLOR = QColor("#d5d9e3")
SUGGESTION_COLOR = QColor(0, 255, 0, 76)


class BoardCanvas(QWidget):
    """Paints the 9x9 board and turns clicks into board-relative coordinates."""

    def __init__(self, gui, parent=None):
        super().__init__(parent)
        self.gui = gui
        self.setObjectName("boardCanvas")
        self.setMinimumSize(420, 420)
        self.setCursor(Qt.PointingHandCursor)

    def board_geometry(self):
        size = min(self.width(), self.height()) * 0.9
        return (self.width() - size) / 2, (self.height() - size) / 2, size

    def mousePressEvent(self, event):
        board_x, board_y, size = self.board_geometry()
        position = event.position()
        self.gui.on_board_clicked(position.x() - board_x, position.y() - board_y, size)

    def paintEvent(self, event):
        board = self.gui.coordinator.board
        board_x, board_y, size = self.board_geometry()

        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing)
        painter.translate(board_x, board_y)

        sub_size = size / 3
        cell_size = size / 9

        if not board.is_game_over():
            fill = ACTIVE_COLORS[board.current_player()]
            if board.active_board is not None:
                i = board.active_board
                painter.fillRect(QRectF(sub_size * (i % 3), sub_size * (i // 3), sub_size, sub_size), fill)
            else:
                painter.fillRect(QRectF(0, 0, size, size), fill)

        suggestion = self.gui.coordinator.visible_suggestion()
        if suggestion is not None:
            outer, inner = decode_action(suggestion)
            col = 3 * (outer % 3) + inner % 3
            row = 3 * (outer // 3) + inner // 3
            box = cell_size * 0.8
            center_x = col * cell_size + cell_size / 2
            center_y = row * cell_size + cell_size / 2
            painter.fillRect(QRectF(center_x - box / 2, center_y - box / 2, box, box), SUGGESTION_COLOR)

        self._draw_grid(painter, 0, 0, size, 6)
        for board_i in range(BOARD_COUNT):
            origin_x = sub_size * (board_i % 3)
            origin_y = sub_size * (board_i // 3)
            self._draw_grid(painter, origin_x, origin_y, sub_size, 2)
            for cell_i in range(CELL_COUNT):
                mark = board.cells[board_i][cell_i]
                if mark is None:
                    continue
                center = QPointF(
                    origin_x + cell_size * (cell_i % 3) + cell_size / 2,
                    origin_y + cell_size * (cell_i // 3) + cell_size / 2,
                )
                self._draw_mark(painter, mark, center, cell_size, 2)

        for board_i, winner in enumerate(board.winners):
            if winner is None:
                continue
            center = QPointF(
                sub_size * (board_i % 3) + sub_size / 2,
                sub_size * (board_i // 3) + sub_size / 2,
            )
            self._draw_mark(painter, winner, center, sub_size, 6)

        painter.end()

    @staticmethod
    def _draw_grid(painter, x, y, grid_size, width):
        painter.setPen(QPen(GRID_COLOR, width))
        step = grid_size / 3
        for k in (1, 2):
            painter.drawLine(QPointF(x + k * step, y), QPointF(x + k * step, y + grid_size))
            painter.drawLine(QPointF(x, y + k * step), QPointF(x + grid_size, y + k * step))

    @staticmethod
    def _draw_mark(painter, mark, center, size, width):
        offset = size / 2 * 0.8
        painter.setPen(QPen(MARK_COLORS[mark], width))
        painter.setBrush(Qt.NoBrush)
        if mark is PlayerMark.X:
            painter.drawLine(center + QPointF(-offset, -offset), center + QPointF(offset, offset))
            painter.drawLine(center + QPointF(offset, -offset), center + QPointF(-offset, offset))
        else:
            painter.drawEllipse(center, offset, offset)


class UltimateTicTacToeGUI(QMainWindow):
    def __init__(self, coordinator: GameCoordinator, dev=False):
        super().__init__()
        self.coordinator = coordinator
        self.dev = dev
        self.control_button_font = QFont("Segoe UI", 11)
        self.apply_theme()
        print(utils.info_text("Starting UI..."))
        if self.dev:
            print(utils.debug_text("Debug Mode ENABLED"))
        self.init_ui()

    def apply_theme(self):
        app = QApplication.instance()
        if app and app.style().objectName().lower() != "fusion":
            QApplication.setStyle("Fusion")

        palette = QPalette()
        palette.setColor(QPalette.Window, QColor("#1c1f24"))
        palette.setColor(QPalette.WindowText, QColor("#f5f7fb"))
        palette.setColor(QPalette.Base, QColor("#1c1f24"))
        palette.setColor(QPalette.Text, QColor("#f5f7fb"))
        palette.setColor(QPalette.Button, QColor("#2b3038"))
        palette.setColor(QPalette.ButtonText, QColor("#f5f7fb"))
        palette.setColor(QPalette.Highlight, QColor("#5865f2"))
        palette.setColor(QPalette.HighlightedText, QColor("#ffffff"))

        if app:
            app.setPalette(palette)

        self.setStyleSheet(
            """
            QMainWindow { background-color: #1c1f24; }
            QLabel#currentPlayer { font-size: 22px; font-weight: 600; }
            QLabel#infoIndicator { color: #b0b7c3; font-size: 13px; }
            QWidget#boardCanvas { background-color: #171a1f; border-radius: 16px; }
            QPushButton[panel="control"] {
                background-color: #2d333c;
                color: #f5f7fb;
                border: 1px solid #3a414d;
                border-radius: 8px;
                padding: 8px 16px;
            }
            QPushButton[panel="control"]:hover { background-color: #363d48; }
            QPushButton[panel="control"]:pressed { background-color: #2b313a; }
            """
        )

    def style_control_button(self, button):
        button.setProperty("panel", "control")
        button.setFont(self.control_button_font)
        button.setCursor(Qt.PointingHandCursor)
        button.setFocusPolicy(Qt.NoFocus)
        button.setMinimumWidth(96)
        button.style().unpolish(button)
        button.style().polish(button)
        button.update()

    def _stat_row(self, layout, caption):
        row = QHBoxLayout()
        label = QLabel(caption)
        value = QLabel("-")
        value.setAlignment(Qt.AlignRight | Qt.AlignVCenter)
        row.addWidget(label)
        row.addWidget(value)
        layout.addLayout(row)
        return value

    def init_ui(self):
        self.setWindowTitle("Ultimate Tic-Tac-Toe")
        self.resize(900, 640)
        self.setMinimumSize(760, 520)

        central_widget = QWidget(self)
        self.setCentralWidget(central_widget)
        main_layout = QHBoxLayout(central_widget)
        main_layout.setContentsMargins(24, 24, 24, 24)
        main_layout.setSpacing(20)

        self.canvas = BoardCanvas(self)
        main_layout.addWidget(self.canvas, stretch=1)

        side_panel = QVBoxLayout()
        side_panel.setSpacing(16)
        main_layout.addLayout(side_panel)

        self.info_indicator = QLabel("Choose players and start a game")
        self.info_indicator.setObjectName("infoIndicator")
        self.info_indicator.setWordWrap(True)
        side_panel.addWidget(self.info_indicator)

        # New game settings
        self.game_settings_panel = QWidget()
        settings_layout = QVBoxLayout(self.game_settings_panel)
        self.player_selects = {}
        for mark in (PlayerMark.X, PlayerMark.O):
            row = QHBoxLayout()
            row.addWidget(QLabel(f"Player {mark.value}"))
            combo = QComboBox()
            combo.addItems([role.value for role in PlayerRole])
            combo.setCurrentText(PlayerRole.HUMAN.value if mark is PlayerMark.X else PlayerRole.AI.value)
            row.addWidget(combo)
            settings_layout.addLayout(row)
            self.player_selects[mark] = combo

        self.start_game_button = QPushButton("Start Game")
        self.start_game_button.clicked.connect(self.start_game)
        self.style_control_button(self.start_game_button)
        settings_layout.addWidget(self.start_game_button)
        side_panel.addWidget(self.game_settings_panel)

        # Game stats
        self.game_stats_panel = QWidget()
        stats_layout = QVBoxLayout(self.game_stats_panel)
        self.current_player = QLabel("X")
        self.current_player.setObjectName("currentPlayer")
        self.current_player.setAlignment(Qt.AlignCenter)
        stats_layout.addWidget(self.current_player)
        self.thinking_time = self._stat_row(stats_layout, "Thinking time (s)")
        self.best_action = self._stat_row(stats_layout, "Best action")
        self.winrate = self._stat_row(stats_layout, "Win rate")
        self.sim_count = self._stat_row(stats_layout, "Simulations")
        self.sim_rate = self._stat_row(stats_layout, "Sims / s")

        self.pause_button = QPushButton("Pause")
        self.pause_button.clicked.connect(self.toggle_simulation)
        self.style_control_button(self.pause_button)
        stats_layout.addWidget(self.pause_button)
        side_panel.addWidget(self.game_stats_panel)
        self.game_stats_panel.hide()

        side_panel.addStretch(1)
        utils.center_on_screen(self)

    # ------------------------------------------------------------------
    # User commands
    # ------------------------------------------------------------------

    def start_game(self):
        assignment = {
            mark: PlayerRole(combo.currentText()) for mark, combo in self.player_selects.items()
        }
        self.coordinator.start_game(assignment)
        self.game_settings_panel.hide()
        self.game_stats_panel.show()
        self.set_info_message("Game started")

    def toggle_simulation(self):
        self.coordinator.toggle_simulation()
        if self.dev:
            print(utils.debug_text("Simulation toggle requested"))

    def on_board_clicked(self, x, y, board_size):
        action = self.coordinator.handle_click(x, y, board_size)
        if self.dev:
            if action is None:
                print(utils.debug_text(f"Click at ({x:.0f}, {y:.0f}) ignored"))
            else:
                print(utils.debug_text(f"Human played {utils.format_action(action)}"))

    # ------------------------------------------------------------------
    # Display hooks driven by the coordinator
    # ------------------------------------------------------------------

    def update_stats(self, stats, metrics):
        self.thinking_time.setText(f"{int(metrics.sim_time / 100) / 10}")

        self.update_best_action()

        winrate = stats.winrate
        self.winrate.setText(f"{int(winrate * 100)}%")
        self.winrate.setStyleSheet(
            f"color: rgb({int((1 - winrate) * 255)}, {int(winrate * 255)}, 0);"
        )
        self.sim_count.setText(f"{metrics.total_sims // 1000}k")
        self.sim_rate.setText(f"{int(metrics.sim_rate)}")
        self.render_board()

    def render_board(self):
        self.canvas.update()

    def update_best_action(self):
        # Human players don't see the search's pick; stale picks are never cached.
        if self.coordinator.current_player_type is not PlayerRole.AI:
            self.best_action.setText("<hidden>")
        else:
            self.best_action.setText(utils.format_action(self.coordinator.visible_suggestion()))

    def update_game_info(self):
        board = self.coordinator.board
        player = board.current_player()
        self.current_player.setText(player.value)
        self.current_player.setStyleSheet(f"color: {MARK_COLORS[player].name()};")
        self.update_best_action()

        if uttt_logic.is_game_over(board):
            outcome = uttt_logic.get_game_result(board)
            print(utils.info_text(f"Game Over: {outcome}"))
            self.set_info_message(f"Game over: {outcome}")
            self.game_settings_panel.show()
            self.game_stats_panel.hide()

    def set_info_message(self, message):
        self.info_indicator.setText(message)


if __name__ == "__main__":
    app = QApplication(sys.argv)

    preview = GameCoordinator(lambda message: print(utils.sending_text(str(message))))
    window = UltimateTicTacToeGUI(preview, dev=True)
    preview.attach_ui(window)

    window.show()
    sys.exit(app.exec())
