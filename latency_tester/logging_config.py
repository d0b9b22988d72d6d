"""Logging setup for the command-line interface."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "latency_tester"


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    enable_color: bool = True,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Route package log records to stderr through rich.

    WARNING by default, INFO with ``verbose`` and DEBUG with ``debug``.
    Calling it again replaces the previously installed handler.
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    console = console or Console(stderr=True, no_color=not enable_color)
    handler = RichHandler(
        console=console,
        show_path=debug,
        markup=False,
        rich_tracebacks=debug,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logger = logging.getLogger(PACKAGE_LOGGER)
    for existing in list(logger.handlers):
        if isinstance(existing, RichHandler):
            logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
