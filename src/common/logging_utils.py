# ABOUTME: Configures console logging for the engine and its demo CLI.
# ABOUTME: Routes records through Rich so degraded-data warnings stand out in the terminal.

from __future__ import annotations

import logging
from typing import Union

from rich.logging import RichHandler


def setup_logging(level: Union[int, str] = logging.INFO, rich_tracebacks: bool = True) -> logging.Logger:
    """Install a single RichHandler on the root logger and return it."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = RichHandler(rich_tracebacks=rich_tracebacks, show_path=False)
    handler.setFormatter(logging.Formatter("%(name)s | %(message)s"))
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    return root_logger
