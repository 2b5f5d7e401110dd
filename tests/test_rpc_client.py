from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from near_transfer.rpc_client import (
    NearRPCClient,
    RPCError,
    RPCTimeoutError,
    RPCTransportError,
    format_rpc_hint,
    is_timeout_error,
)


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.url = "https://rpc.testnet.near.org"
        self.text = payload if isinstance(payload, str) else json.dumps(payload)

    def json(self) -> Any:
        if isinstance(self._payload, str):
            raise ValueError("not json")
        return self._payload


def _client_returning(monkeypatch: pytest.MonkeyPatch, response: Any, sent: list | None = None) -> NearRPCClient:
    client = NearRPCClient("https://rpc.testnet.near.org", timeout=5)

    def fake_post(url, data=None, headers=None, timeout=None):
        if sent is not None:
            sent.append(json.loads(data))
        if isinstance(response, BaseException):
            raise response
        return response

    monkeypatch.setattr(client._session, "post", fake_post)
    return client


def test_view_account_sends_query_and_returns_result(monkeypatch: pytest.MonkeyPatch) -> None:
    sent = []
    client = _client_returning(
        monkeypatch, FakeResponse({"jsonrpc": "2.0", "id": "x", "result": {"amount": "10"}}), sent
    )

    assert client.view_account("alice.testnet") == {"amount": "10"}
    assert sent[0]["method"] == "query"
    assert sent[0]["params"] == {
        "request_type": "view_account",
        "finality": "final",
        "account_id": "alice.testnet",
    }


def test_broadcast_sends_base64_positional_param(monkeypatch: pytest.MonkeyPatch) -> None:
    sent = []
    client = _client_returning(monkeypatch, FakeResponse({"result": {"status": {}}}), sent)

    client.broadcast_tx_commit("AAAA")

    assert sent[0]["method"] == "broadcast_tx_commit"
    assert sent[0]["params"] == ["AAAA"]


def test_error_payload_raises_rpc_error(monkeypatch: pytest.MonkeyPatch) -> None:
    error = {
        "code": -32000,
        "message": "Server error",
        "data": "account ghost.testnet does not exist while viewing",
        "cause": {"name": "UNKNOWN_ACCOUNT", "info": {}},
        "name": "HANDLER_ERROR",
    }
    client = _client_returning(monkeypatch, FakeResponse({"error": error}))

    with pytest.raises(RPCError) as excinfo:
        client.view_account("ghost.testnet")

    assert excinfo.value.is_unknown_account
    assert not excinfo.value.is_timeout
    assert excinfo.value.name == "HANDLER_ERROR"


def test_transport_timeout_is_classified(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client_returning(monkeypatch, requests.Timeout("read timed out"))

    with pytest.raises(RPCTimeoutError) as excinfo:
        client.broadcast_tx_commit("AAAA")

    assert is_timeout_error(excinfo.value)


def test_connection_failure_is_transport_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client_returning(monkeypatch, requests.ConnectionError("refused"))

    with pytest.raises(RPCTransportError) as excinfo:
        client.view_account("alice.testnet")

    assert not is_timeout_error(excinfo.value)


def test_gateway_timeout_status_is_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client_returning(monkeypatch, FakeResponse("upstream timed out", status_code=504))

    with pytest.raises(RPCTimeoutError):
        client.broadcast_tx_commit("AAAA")


def test_malformed_json_is_transport_error(monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client_returning(monkeypatch, FakeResponse("<html>"))

    with pytest.raises(RPCTransportError, match="malformed JSON"):
        client.view_account("alice.testnet")


def test_format_rpc_hint_covers_common_causes() -> None:
    assert "access key" in format_rpc_hint({"cause": {"name": "UNKNOWN_ACCESS_KEY"}})
    assert "does not exist" in format_rpc_hint(RPCError(-32000, "x", cause={"name": "UNKNOWN_ACCOUNT"}))
    assert "block hash" in format_rpc_hint({"data": {"TxExecutionError": "Expired"}})
    assert format_rpc_hint({"data": "something else"}) is None
    assert format_rpc_hint(None) is None
