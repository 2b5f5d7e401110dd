"""Account existence and balance checks."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .model import EndpointDescriptor, ValidationResult
from .rpc_client import RPCError

logger = logging.getLogger(__name__)


class AccountValidator:
    """Look up account state on the selected endpoint.

    Offline runs (no endpoint) get :meth:`ValidationResult.unknown` without any
    network call. Transport failures are not retried here; they propagate.
    """

    def __init__(self, rpc_for: Callable[[EndpointDescriptor], Any]) -> None:
        self._rpc_for = rpc_for

    def validate(self, endpoint: EndpointDescriptor | None, account_id: str) -> ValidationResult:
        if endpoint is None:
            return ValidationResult.unknown()

        rpc = self._rpc_for(endpoint)
        try:
            account = rpc.view_account(account_id)
        except RPCError as exc:
            if exc.is_unknown_account:
                logger.debug("Account %s not found on %s", account_id, endpoint.network_tag)
                return ValidationResult.not_found()
            raise
        balance = int(account.get("amount", 0))
        logger.debug("Account %s balance %d yocto", account_id, balance)
        return ValidationResult.exists(balance)
