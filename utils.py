from PySide6.QtCore import QProcess
from PySide6.QtWidgets import QApplication

from uttt_logic import decode_action


def color_text(text, color_code):
    return f"\033[{color_code}m{text}\033[0m"

def debug_text(text):
    return f"{color_text('DEBUG', '31')} {text}"

def info_text(text):
    return f"{color_text('INFO', '34')}  {text}"

def sending_text(text):
    return f"{color_text('SENDING  ', '32')} {text}"

def received_text(text):
    return f"{color_text('RECEIVED ', '35')} {text}"

def format_action(action):
    if action is None:
        return "-"
    outer, inner = decode_action(action)
    return f"({outer}, {inner})"

def cleanup(process, thread, app, dev=False, quit_app=True):
    if dev:
        print(debug_text("Cleaning up resources..."))

    if process is not None:
        if process.state() != QProcess.NotRunning:
            process.terminate()
            if not process.waitForFinished(2000):
                if dev:
                    print(debug_text("Worker process unresponsive; forcing termination"))
                process.kill()
                process.waitForFinished(1000)
        process.close()

    if thread is not None:
        thread.join(timeout=1)

    if quit_app and app is not None:
        app.quit()

def center_on_screen(window):
    screen = window.screen() or QApplication.primaryScreen()
    frame = window.frameGeometry()
    frame.moveCenter(screen.availableGeometry().center())
    window.move(frame.topLeft())
