"""
Logging setup for the toolshed CLI.

Library modules only create loggers (logging.getLogger(__name__)); the CLI
decides where records go by calling configure_logging() once at startup.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"


def configure_logging(
    level: str | int = logging.WARNING,
    verbose: bool = False,
    console: Console | None = None,
) -> None:
    """
    Route log records to stderr through Rich.

    Args:
        level: Root level when not verbose (name or number)
        verbose: Force DEBUG for toolshed loggers
        console: Console to write to (a stderr console if None)
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.WARNING

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
    logging.getLogger("toolshed").setLevel(logging.DEBUG if verbose else level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
