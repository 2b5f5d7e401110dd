"""Domain models for the near-transfer pipeline.

The dataclasses here are the values threaded between pipeline stages. They
are frozen: a stage that learns something new returns a fresh instance via
:func:`dataclasses.replace` instead of mutating the one it received.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, replace
from typing import Any

IMPLICIT_ACCOUNT_RE = re.compile(r"^[0-9a-f]{64}$")
_ACCOUNT_ID_RE = re.compile(r"^(([a-z\d]+[\-_])*[a-z\d]+\.)*([a-z\d]+[\-_])*[a-z\d]+$")
MIN_ACCOUNT_ID_LEN = 2
MAX_ACCOUNT_ID_LEN = 64


def parse_account_id(text: str) -> str:
    """Validate NEAR account id syntax and return the normalized id."""

    account_id = (text or "").strip()
    if not MIN_ACCOUNT_ID_LEN <= len(account_id) <= MAX_ACCOUNT_ID_LEN:
        raise ValueError(
            f"Account id must be {MIN_ACCOUNT_ID_LEN}-{MAX_ACCOUNT_ID_LEN} characters: {account_id!r}"
        )
    if not _ACCOUNT_ID_RE.match(account_id):
        raise ValueError(
            f"Invalid account id {account_id!r}; use lowercase letters, digits, '-', '_' and '.'"
        )
    return account_id


def is_implicit_account(account_id: str) -> bool:
    """Return ``True`` for 64-character lowercase hex (implicit) account ids."""

    return bool(IMPLICIT_ACCOUNT_RE.match(account_id))


@dataclass(frozen=True)
class EndpointDescriptor:
    """A resolved RPC endpoint. Offline mode is represented by ``None``."""

    network_tag: str
    rpc_url: str
    explorer_url: str | None = None


@dataclass(frozen=True)
class BuildContext:
    """Facts accumulated by the stages so far."""

    endpoint: EndpointDescriptor | None = None
    sender_account_id: str | None = None

    @property
    def is_online(self) -> bool:
        return self.endpoint is not None

    def with_sender(self, account_id: str) -> "BuildContext":
        return replace(self, sender_account_id=account_id)


class AccountStatus(enum.Enum):
    EXISTS = "exists"
    NOT_FOUND = "not-found"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of an account lookup; ``balance`` is set only for ``EXISTS``."""

    status: AccountStatus
    balance: int | None = None

    @classmethod
    def exists(cls, balance: int) -> "ValidationResult":
        return cls(AccountStatus.EXISTS, balance)

    @classmethod
    def not_found(cls) -> "ValidationResult":
        return cls(AccountStatus.NOT_FOUND)

    @classmethod
    def unknown(cls) -> "ValidationResult":
        return cls(AccountStatus.UNKNOWN)


class OutcomeKind(enum.Enum):
    COMMITTED = "committed"
    DISPLAYED = "displayed"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Terminal result of a run.

    ``COMMITTED`` carries the node's final execution result, ``DISPLAYED`` the
    base64 text that was printed, and ``SUPPRESSED`` the error that was
    already reported to the user.
    """

    kind: OutcomeKind
    result: dict[str, Any] | None = None
    encoded: str | None = None
    error: BaseException | None = field(default=None, compare=False)

    @classmethod
    def committed(cls, result: dict[str, Any]) -> "SubmissionOutcome":
        return cls(OutcomeKind.COMMITTED, result=result)

    @classmethod
    def displayed(cls, encoded: str) -> "SubmissionOutcome":
        return cls(OutcomeKind.DISPLAYED, encoded=encoded)

    @classmethod
    def suppressed(cls, error: BaseException) -> "SubmissionOutcome":
        return cls(OutcomeKind.SUPPRESSED, error=error)
