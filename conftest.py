import os
import sys

import pytest

# Repo-local modules (`import engine`, `import coordinator`) resolve without an install.
root_dir = os.path.abspath(os.path.dirname(__file__))
if root_dir not in sys.path:
    sys.path.insert(0, root_dir)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "-G",
        "--gui",
        action="store_true",
        default=False,
        dest="run_gui",
        help="Run tests marked with @pytest.mark.gui (needs PySide6 and a display)",
    )
    parser.addoption(
        "-S",
        "--search",
        action="store_true",
        default=False,
        dest="run_search_slow",
        help="Run tests marked with @pytest.mark.search_slow (full games against the worker)",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    skips = {
        "gui": ("run_gui", "use -G/--gui to enable GUI tests"),
        "search_slow": ("run_search_slow", "use -S/--search to enable full-game search tests"),
    }
    for marker, (option, reason) in skips.items():
        if config.getoption(option):
            continue
        skip = pytest.mark.skip(reason=reason)
        for item in items:
            if marker in item.keywords:
                item.add_marker(skip)
