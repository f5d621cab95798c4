"""Unit tests for logging setup."""

import logging
from collections.abc import Generator

import pytest
from rich.console import Console
from rich.logging import RichHandler

from toolshed.logging import configure_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("toolshed").setLevel(logging.NOTSET)


def test_installs_rich_handler() -> None:
    configure_logging("INFO", console=Console(file=None))
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert any(isinstance(handler, RichHandler) for handler in root.handlers)


def test_verbose_enables_debug_for_toolshed() -> None:
    configure_logging("WARNING", verbose=True)
    assert logging.getLogger("toolshed").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING


@pytest.mark.parametrize(("level", "expected"), [("debug", logging.DEBUG), ("bogus", logging.WARNING)])
def test_level_names(level: str, expected: int) -> None:
    configure_logging(level)
    assert logging.getLogger().level == expected
