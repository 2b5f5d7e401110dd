"""Display or broadcast the finished transaction."""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from .model import EndpointDescriptor, SubmissionOutcome
from .resolver import Option
from .rpc_client import RPCError, RPCTransportError, format_rpc_hint, is_timeout_error
from .signing import SigningResult

logger = logging.getLogger(__name__)

SEND_TAG = "send"
DISPLAY_TAG = "display"
SUBMIT_OPTIONS = (
    Option(SEND_TAG, "I want to send the transaction to the network"),
    Option(DISPLAY_TAG, "I only want to print base64-encoded transaction for JSON RPC input and exit"),
)


def submit_options(endpoint: EndpointDescriptor | None) -> Sequence[Option]:
    """Offline runs cannot send, so only ``display`` is offered."""

    if endpoint is None:
        return tuple(option for option in SUBMIT_OPTIONS if option.tag == DISPLAY_TAG)
    return SUBMIT_OPTIONS


class SubmissionEngine:
    """Turn a signing result into a :class:`SubmissionOutcome`.

    A broadcast that times out is re-sent immediately with no attempt limit.
    Any other broadcast failure is reported and becomes a ``SUPPRESSED``
    outcome.
    """

    def __init__(
        self,
        rpc_for: Callable[[EndpointDescriptor], Any],
        notify: Callable[[str], None] = print,
    ) -> None:
        self._rpc_for = rpc_for
        self._notify = notify

    def display(self, encoded: str) -> SubmissionOutcome:
        self._notify(f"\nSerialize_to_base64:\n{encoded}")
        return SubmissionOutcome.displayed(encoded)

    def submit(
        self, result: SigningResult, endpoint: EndpointDescriptor | None, choice: str
    ) -> SubmissionOutcome:
        if result.signed is None:
            return self.display(result.transaction.to_base64())
        if endpoint is None or choice == DISPLAY_TAG:
            return self.display(result.signed.to_base64())
        return self.broadcast(result.signed.to_base64(), endpoint)

    def broadcast(self, signed_tx_base64: str, endpoint: EndpointDescriptor) -> SubmissionOutcome:
        rpc = self._rpc_for(endpoint)
        self._notify("Transaction sent ...")
        attempt = 0
        while True:
            attempt += 1
            try:
                response = rpc.broadcast_tx_commit(signed_tx_base64)
            except (RPCError, RPCTransportError) as exc:
                if is_timeout_error(exc):
                    logger.info("Broadcast attempt %d timed out; retrying", attempt)
                    self._notify(
                        "Timeout error transaction.\n"
                        "Please wait. The next try to send this transaction is happening right now ..."
                    )
                    continue
                hint = format_rpc_hint(exc) if isinstance(exc, RPCError) else None
                message = f"Error transaction: {exc}"
                if hint:
                    message = f"{message}\nHint: {hint}"
                self._notify(message)
                logger.debug("Broadcast failed after %d attempt(s)", attempt, exc_info=True)
                return SubmissionOutcome.suppressed(exc)
            logger.debug("Broadcast committed after %d attempt(s)", attempt)
            return SubmissionOutcome.committed(response or {})


def describe_outcome(
    outcome: SubmissionOutcome, endpoint: EndpointDescriptor | None
) -> list[str]:
    """Human-readable status lines for a committed transaction."""

    if outcome.result is None:
        return []
    result = outcome.result
    transaction = result.get("transaction") or {}
    tx_hash = transaction.get("hash") or (result.get("transaction_outcome") or {}).get("id")
    status = result.get("status") or {}

    lines = []
    if isinstance(status, dict) and "Failure" in status:
        lines.append(f"Transaction failed: {status['Failure']}")
    elif isinstance(status, dict) and "SuccessValue" in status:
        lines.append("Transaction succeeded")
    else:
        lines.append(f"Transaction status: {status}")
    if tx_hash:
        lines.append(f"Transaction ID: {tx_hash}")
        if endpoint is not None and endpoint.explorer_url:
            lines.append(
                "To see the transaction in the transaction explorer, please open this url in your browser:"
            )
            lines.append(f"{endpoint.explorer_url.rstrip('/')}/transactions/{tx_hash}")
    return lines
