from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "adbmirror"


def setup_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if verbose else logging.WARNING
    logger.setLevel(level)
    if any(isinstance(handler, RichHandler) for handler in logger.handlers):
        return logger

    handler = RichHandler(
        console=console,
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
