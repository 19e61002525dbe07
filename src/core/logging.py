"""Console logging for the gateway and its CLI.

Records go to stderr through a `RichHandler`. Records from third-party
loggers (httpx, httpcore, ...) carry a short `[name]` prefix so they stand
out from gateway records.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

PROJECT_PREFIXES = ("core", "adapters", "cli")


class ThirdPartyPrefixFilter(logging.Filter):
    """Set `record.prefix` to "[pkg]" for non-project loggers, "" otherwise."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.split(".")[0] in PROJECT_PREFIXES:
            record.prefix = ""
        else:
            # e.g. "httpx._client" -> "[httpx]"
            record.prefix = f"[{record.name.split('.')[0]}]"
        return True


def config_console_handler(
    level: int = logging.INFO,
    debug_mode: bool = False,
    color: bool = True,
) -> RichHandler:
    """Build a stderr `RichHandler`. Debug mode adds paths and timestamps."""

    console = Console(color_system="auto" if color else None, stderr=True)
    if debug_mode:
        level = logging.DEBUG

    handler = RichHandler(
        level=level,
        console=console,
        rich_tracebacks=True,
        show_time=debug_mode,
        show_path=debug_mode,
    )
    fmt = "%(prefix)s %(message)s" if not debug_mode else "%(name)s: %(message)s"
    handler.setFormatter(logging.Formatter(fmt=fmt))
    handler.addFilter(ThirdPartyPrefixFilter())
    return handler


def configure_logging(level: str | int = "INFO", *, debug_mode: bool = False, color: bool = True) -> RichHandler:
    """Attach a console handler to the root logger (replacing a previous one)."""

    numeric = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(numeric, int):
        raise ValueError(f"unknown log level: {level!r}")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)

    handler = config_console_handler(numeric, debug_mode=debug_mode, color=color)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug_mode else numeric)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING if not debug_mode else logging.DEBUG)
    return handler
