"""
Human interaction surface for the invocation pipeline.

The pipeline never talks to a terminal directly. It asks an Interaction to
confirm a gated call or to collect a missing secret:

- ConsoleInteraction: Rich prompts on the terminal
- ScriptedInteraction: Pre-recorded answers (tests, non-interactive runs)
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt


class Interaction(ABC):
    """Something that can ask a human a question."""

    @abstractmethod
    def confirm(self, message: str) -> bool:
        """Ask a yes/no question. Only an explicit yes returns True."""
        ...

    @abstractmethod
    def prompt_secret(self, message: str) -> str | None:
        """Ask for a secret value. Returns None if the human gave none."""
        ...


class ConsoleInteraction(Interaction):
    """Interactive prompts on a Rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def confirm(self, message: str) -> bool:
        return Confirm.ask(
            f"[yellow]{escape(message)}[/yellow]", console=self.console, default=False
        )

    def prompt_secret(self, message: str) -> str | None:
        value = Prompt.ask(escape(message), console=self.console, password=True, default="")
        value = value.strip() if value else ""
        return value or None


class ScriptedInteraction(Interaction):
    """
    Answers questions from pre-recorded lists.

    When a list runs out, confirmations are denied and secret prompts
    return None. Every question asked is kept for inspection.

    Attributes:
        confirmations: Messages passed to confirm(), in order
        secret_prompts: Messages passed to prompt_secret(), in order
    """

    def __init__(
        self,
        answers: Iterable[bool] = (),
        secrets: Iterable[str | None] = (),
    ) -> None:
        self._answers = list(answers)
        self._secrets = list(secrets)
        self.confirmations: list[str] = []
        self.secret_prompts: list[str] = []

    def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        if not self._answers:
            return False
        return self._answers.pop(0) is True

    def prompt_secret(self, message: str) -> str | None:
        self.secret_prompts.append(message)
        if not self._secrets:
            return None
        return self._secrets.pop(0)
