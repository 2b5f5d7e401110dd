"""JSON-RPC client for NEAR Protocol nodes.

The client backs every online stage of the transfer pipeline: account
existence and balance checks, access-key nonce lookups and the final
``broadcast_tx_commit`` call. It is intentionally thin; each helper maps to a
single RPC request and returns the parsed ``result`` payload. Errors are split
into protocol-level failures reported by the node (:class:`RPCError`) and
transport failures (:class:`RPCTransportError`), with timeouts surfaced as
their own class so the submission engine can retry them.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import DEFAULT_RPC_TIMEOUT

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the NEAR node responds with a JSON-RPC error object."""

    def __init__(
        self,
        code: int,
        message: str,
        *,
        data: Any = None,
        name: str | None = None,
        cause: dict[str, Any] | None = None,
    ) -> None:
        detail = f": {data}" if isinstance(data, str) and data else ""
        super().__init__(f"RPC error {code}: {message}{detail}")
        self.code = code
        self.message = message
        self.data = data
        self.name = name
        self.cause = cause or {}

    @classmethod
    def from_payload(cls, error: dict[str, Any]) -> "RPCError":
        cause = error.get("cause")
        return cls(
            error.get("code", -1),
            error.get("message", "unknown"),
            data=error.get("data"),
            name=error.get("name"),
            cause=cause if isinstance(cause, dict) else None,
        )

    @property
    def cause_name(self) -> str | None:
        return self.cause.get("name")

    @property
    def is_timeout(self) -> bool:
        if self.cause_name == "TIMEOUT_ERROR":
            return True
        return isinstance(self.data, str) and "Timeout" in self.data

    @property
    def is_unknown_account(self) -> bool:
        if self.cause_name == "UNKNOWN_ACCOUNT":
            return True
        return isinstance(self.data, str) and "does not exist" in self.data


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RPCTimeoutError(RPCTransportError):
    """Raised when a request exceeded the transport timeout."""


def is_timeout_error(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is a timeout from either the node or the transport."""

    if isinstance(exc, RPCTimeoutError):
        return True
    return isinstance(exc, RPCError) and exc.is_timeout


def format_rpc_hint(error_obj: dict[str, Any] | RPCError | None) -> str | None:
    """Return a human-friendly hint for common NEAR JSON-RPC errors."""

    if error_obj is None:
        return None

    if isinstance(error_obj, RPCError):
        cause_name = error_obj.cause_name
        data = error_obj.data
    else:
        cause = error_obj.get("cause") or {}
        cause_name = cause.get("name") if isinstance(cause, dict) else None
        data = error_obj.get("data")
    text = json.dumps(data) if data is not None and not isinstance(data, str) else (data or "")

    if cause_name == "UNKNOWN_ACCESS_KEY" or "access key" in text.lower():
        return (
            "The signing public key is not registered as an access key on the sender account. "
            "Check --signer-public-key, the keychain entry, or the Ledger HD path."
        )
    if cause_name == "UNKNOWN_ACCOUNT":
        return "The account does not exist on the selected network; check the account id and --network."
    if "InvalidNonce" in text:
        return "The nonce is stale. Query the access key again and use its nonce incremented by 1."
    if "Expired" in text or "InvalidChain" in text:
        return "The block hash is too old or from another network. Fetch a recent block hash and retry."
    if "NotEnoughBalance" in text or "LackBalanceForState" in text:
        return "The sender cannot cover the deposit plus gas and storage staking; lower --amount."
    return None


class NearRPCClient:
    """Typed JSON-RPC client for NEAR nodes.

    One instance wraps a single endpoint URL and reuses one
    :class:`requests.Session` for the lifetime of a run.
    """

    def __init__(self, rpc_url: str, timeout: float = DEFAULT_RPC_TIMEOUT) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._session = requests.Session()

    def call(self, method: str, params: Optional[Any] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params if params is not None else [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.rpc_url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            logger.warning("RPC call %s timed out after %ss", method, self.timeout)
            raise RPCTimeoutError(f"RPC request {method} timed out after {self.timeout}s") from exc
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                f"RPC connection to {self.rpc_url} failed. Check --network/--rpc-url and your connectivity."
            ) from exc
        self._raise_for_status(response)
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if result.get("error"):
            raise RPCError.from_payload(result["error"])
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        # NEAR nodes return JSON-RPC errors with HTTP 200; a non-2xx status
        # that still carries a JSON error body is surfaced as RPCError.
        if response.ok:
            return
        try:
            err_body = response.json()
        except ValueError:
            err_body = response.text

        logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
        logger.error("RPC error body: %s", err_body)
        if isinstance(err_body, dict) and isinstance(err_body.get("error"), dict):
            raise RPCError.from_payload(err_body["error"])
        if response.status_code in {408, 504}:
            raise RPCTimeoutError(
                f"RPC server timed out (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        raise RPCTransportError(
            f"RPC server returned HTTP {response.status_code}; check the endpoint URL.",
            status_code=response.status_code,
        )

    # Convenience wrappers -------------------------------------------------

    def query(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.call("query", request)

    def view_account(self, account_id: str, finality: str = "final") -> Dict[str, Any]:
        return self.query(
            {"request_type": "view_account", "finality": finality, "account_id": account_id}
        )

    def view_access_key(
        self, account_id: str, public_key: str, finality: str = "final"
    ) -> Dict[str, Any]:
        return self.query(
            {
                "request_type": "view_access_key",
                "finality": finality,
                "account_id": account_id,
                "public_key": public_key,
            }
        )

    def broadcast_tx_commit(self, signed_tx_base64: str) -> Dict[str, Any]:
        return self.call("broadcast_tx_commit", [signed_tx_base64])
