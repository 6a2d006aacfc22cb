"""Interactive account selection."""

import logging
from typing import Protocol

from rich.console import Console
from rich.markup import escape
from rich.prompt import IntPrompt

logger = logging.getLogger("tokenchain.prompt")


class Selector(Protocol):
    """Protocol for choosing one option from an ordered list."""

    def select(self, options: list[str]) -> int | None:
        """Ask for a choice.

        Returns:
            Index into ``options``, or None if the user cancelled.
        """
        ...


class ConsoleSelector:
    """Numbered menu on the terminal."""

    def __init__(self, console: Console | None = None, package: str | None = None):
        self.console = console or Console(stderr=True)
        self.package = package

    def select(self, options: list[str]) -> int | None:
        who = f"The {escape(self.package)} package" if self.package else "This program"
        self.console.print(
            f"[bold]{who} is requesting access to your Google account.[/bold]\n"
            "Select a pre-authorised account or enter '1' to obtain a new token.\n"
            "Press Esc/Ctrl + C to cancel."
        )
        for number, label in enumerate(options, start=1):
            self.console.print(f"{number}: {escape(label)}")

        try:
            choice = IntPrompt.ask(
                "Selection",
                console=self.console,
                choices=[str(n) for n in range(0, len(options) + 1)],
                show_choices=False,
            )
        except (KeyboardInterrupt, EOFError):
            logger.debug("Selection cancelled")
            return None

        if choice == 0:
            return None
        return choice - 1
