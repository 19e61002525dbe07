"""Run `ipc-gateway` from a checkout: `python main.py call list_configs`.

Installed copies use the `ipc-gateway` console script instead.
"""

from __future__ import annotations

import sys
from pathlib import Path

SRC_DIR = Path(__file__).resolve().parent / "src"


def _prepare_interpreter() -> None:
    if str(SRC_DIR) not in sys.path:
        sys.path.insert(0, str(SRC_DIR))
    # Rich panels and JSON output are UTF-8; Windows consoles default to cp1252.
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")


def main() -> None:
    _prepare_interpreter()

    from cli.main import run  # noqa: PLC0415

    run()


if __name__ == "__main__":
    main()
