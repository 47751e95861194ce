"""Logging setup for the CLI.

Library modules only call `logging.getLogger(__name__)`; handlers are installed
once here so the rich console output and log lines do not fight each other.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_HANDLER_NAME = "bulkpayout-rich"


def configure_logging(level: str | int = "INFO", *, console: Console | None = None) -> None:
    """Install a `RichHandler` on the root logger (idempotent)."""

    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    # httpx logs every request at INFO; only DEBUG runs show them.
    logging.getLogger("httpx").setLevel(level if level <= logging.DEBUG else max(level, logging.WARNING))

    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setLevel(level)
            return

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)


def reset_logging() -> None:
    """Remove the handler installed by `configure_logging` (tests)."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)
