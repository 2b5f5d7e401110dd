"""Supplied-or-prompted value resolution shared by every pipeline stage.

Every stage follows the same rule: take the value the caller supplied on the
command line, parse and validate it, and accept it when it passes. Invalid
input never aborts an interactive run; the operator is told why and asked
again. Without a terminal to ask, the same failure is a :class:`StageError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, TypeVar

from .echo import EchoTrail

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageError(RuntimeError):
    """Raised when a stage cannot resolve a value without prompting."""


class Prompter(Protocol):
    def ask_text(self, prompt: str, default: str | None = None) -> str:
        ...

    def ask_choice(self, prompt: str, options: Sequence[str], default: int = 0) -> int:
        ...

    def notify(self, message: str) -> None:
        ...


@dataclass(frozen=True)
class Option:
    """One entry of a fixed menu: the flag value and the prompt label."""

    tag: str
    label: str


@dataclass(frozen=True)
class Verdict:
    accepted: bool
    message: str | None = None
    # Pre-filled answer offered on the next prompt.
    hint: str | None = None

    @classmethod
    def reject(cls, message: str, hint: str | None = None) -> "Verdict":
        return cls(False, message, hint)


ACCEPT = Verdict(True)


class StageRunner:
    """Resolve stage values from supplied input or from the operator."""

    def __init__(self, prompter: Prompter, trail: EchoTrail, *, interactive: bool = True) -> None:
        self.prompter = prompter
        self.trail = trail
        self.interactive = interactive

    def notify(self, message: str) -> None:
        self.prompter.notify(message)

    def resolve(
        self,
        label: str,
        supplied: str | None,
        *,
        parse: Callable[[str], T],
        prompt: str,
        validate: Optional[Callable[[T], Verdict]] = None,
        default: str | None = None,
    ) -> T:
        """Return the first value that parses and passes *validate*."""

        raw = supplied
        hint = default
        while True:
            if raw is None:
                if not self.interactive:
                    raise StageError(f"{label} is required when running non-interactively")
                raw = self.prompter.ask_text(prompt, default=hint)

            try:
                value = parse(raw)
            except ValueError as exc:
                verdict = Verdict.reject(str(exc))
            else:
                verdict = validate(value) if validate is not None else ACCEPT
                if verdict.accepted:
                    return value

            logger.debug("%s rejected %r: %s", label, raw, verdict.message)
            if not self.interactive:
                raise StageError(f"{label}: {verdict.message}")
            self.notify(verdict.message or f"Invalid {label.lower()}")
            if verdict.hint is not None:
                hint = verdict.hint
            raw = None

    def choose(
        self,
        label: str,
        supplied: str | None,
        options: Sequence[Option],
        *,
        prompt: str,
        default: int = 0,
    ) -> Option:
        """Pick one of *options* by tag, or by menu when nothing valid was supplied."""

        tags = [option.tag for option in options]
        if supplied is not None:
            if supplied in tags:
                return options[tags.index(supplied)]
            message = f"{label} must be one of: {', '.join(tags)} (got {supplied!r})"
            if not self.interactive:
                raise StageError(message)
            self.notify(message)
        elif not self.interactive:
            raise StageError(
                f"{label} is required when running non-interactively (one of: {', '.join(tags)})"
            )

        index = self.prompter.ask_choice(prompt, [option.label for option in options], default=default)
        return options[index]
