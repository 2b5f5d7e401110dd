"""Record resolved stage values as an equivalent command line."""

from __future__ import annotations

import shlex
from typing import Iterable, List, Sequence, Tuple

PROGRAM_NAME = "near-transfer"
TRANSFER_COMMAND = "transfer"


class EchoTrail:
    """Append-only, ordered record of the flags each stage resolved.

    Replaying :meth:`command_line` non-interactively reproduces every
    resolved value without a single prompt.
    """

    def __init__(self) -> None:
        self._groups: List[Tuple[str, ...]] = []

    def record(self, *tokens: str) -> None:
        if tokens:
            self._groups.append(tuple(str(token) for token in tokens))

    @property
    def tokens(self) -> List[str]:
        return [token for group in self._groups for token in group]

    def __len__(self) -> int:
        return len(self._groups)

    def to_argv(self, global_args: Sequence[str] = ()) -> List[str]:
        return [*global_args, TRANSFER_COMMAND, *self.tokens]

    def command_line(self, global_args: Iterable[str] = (), program: str = PROGRAM_NAME) -> str:
        return shlex.join([program, *self.to_argv(tuple(global_args))])
