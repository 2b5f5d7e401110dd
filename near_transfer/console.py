"""Interactive terminal prompts for the transfer pipeline."""

from __future__ import annotations

from typing import Callable, Sequence


class ConsolePrompter:
    """Blocking ``input()``-based prompts.

    Text prompts show the default in brackets and return it on blank input.
    Menus are numbered from 1; a blank answer picks the default entry.
    """

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print,
    ) -> None:
        self._input = input_func
        self._output = output_func

    def ask_text(self, prompt: str, default: str | None = None) -> str:
        suffix = f" [{default}]" if default is not None else ""
        while True:
            raw = self._input(f"{prompt}{suffix}: ").strip()
            if raw:
                return raw
            if default is not None:
                return default
            self._output("Please enter a value or provide a default.")

    def ask_choice(self, prompt: str, options: Sequence[str], default: int = 0) -> int:
        self._output("")
        self._output(prompt)
        for number, label in enumerate(options, start=1):
            marker = "*" if number - 1 == default else " "
            self._output(f" {marker}[{number}] {label}")
        while True:
            raw = self._input(f"Select an option [{default + 1}]: ").strip()
            if not raw:
                return default
            if raw.isdigit() and 1 <= int(raw) <= len(options):
                return int(raw) - 1
            self._output("Invalid selection, please try again.")

    def notify(self, message: str) -> None:
        self._output(message)
