from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

import pytest

from near_transfer.balance import YOCTO_PER_NEAR
from near_transfer.echo import EchoTrail
from near_transfer.keys import SecretKey, base58_encode
from near_transfer.model import EndpointDescriptor
from near_transfer.network import endpoint_for
from near_transfer.resolver import StageRunner
from near_transfer.rpc_client import RPCError

BLOCK_HASH = bytes(range(32))
BLOCK_HASH_B58 = base58_encode(BLOCK_HASH)


class ScriptedPrompter:
    """Answers prompts from a queue: ``str`` for text prompts, ``int`` for menus."""

    def __init__(self, answers: Sequence[Any] = ()) -> None:
        self.answers: List[Any] = list(answers)
        self.text_prompts: List[Tuple[str, str | None]] = []
        self.choice_prompts: List[Tuple[str, List[str]]] = []
        self.notices: List[str] = []

    def ask_text(self, prompt: str, default: str | None = None) -> str:
        self.text_prompts.append((prompt, default))
        answer = self.answers.pop(0)
        assert isinstance(answer, str), f"expected a text answer for {prompt!r}"
        return answer

    def ask_choice(self, prompt: str, options: Sequence[str], default: int = 0) -> int:
        self.choice_prompts.append((prompt, list(options)))
        answer = self.answers.pop(0)
        assert isinstance(answer, int), f"expected a menu answer for {prompt!r}"
        return answer

    def notify(self, message: str) -> None:
        self.notices.append(message)


class NoPrompts(ScriptedPrompter):
    def ask_text(self, prompt: str, default: str | None = None) -> str:
        raise AssertionError(f"unexpected prompt: {prompt}")

    def ask_choice(self, prompt: str, options: Sequence[str], default: int = 0) -> int:
        raise AssertionError(f"unexpected menu: {prompt}")


class StubRPC:
    def __init__(
        self,
        accounts: Dict[str, int] | None = None,
        access_key_nonce: int = 41,
        broadcast_results: Sequence[Any] = (),
    ) -> None:
        self.accounts = dict(accounts or {})
        self.access_key_nonce = access_key_nonce
        self.broadcast_results = list(broadcast_results)
        self.calls: List[Tuple[str, Any]] = []

    def view_account(self, account_id: str) -> Dict[str, Any]:
        self.calls.append(("view_account", account_id))
        if account_id not in self.accounts:
            raise RPCError(
                -32000,
                "Server error",
                data=f"account {account_id} does not exist while viewing",
                cause={"name": "UNKNOWN_ACCOUNT", "info": {}},
            )
        return {"amount": str(self.accounts[account_id]), "locked": "0"}

    def view_access_key(self, account_id: str, public_key: str) -> Dict[str, Any]:
        self.calls.append(("view_access_key", (account_id, public_key)))
        return {"nonce": self.access_key_nonce, "permission": "FullAccess", "block_hash": BLOCK_HASH_B58}

    def broadcast_tx_commit(self, signed_tx_base64: str) -> Dict[str, Any]:
        self.calls.append(("broadcast_tx_commit", signed_tx_base64))
        result = self.broadcast_results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def secret_key() -> SecretKey:
    return SecretKey(bytes([7] * 32))


@pytest.fixture
def testnet() -> EndpointDescriptor:
    return endpoint_for("testnet")


@pytest.fixture
def stub_rpc() -> StubRPC:
    return StubRPC(accounts={"alice.testnet": 100 * YOCTO_PER_NEAR, "bob.testnet": 0})


def make_runner(answers: Sequence[Any] = (), *, interactive: bool = True) -> StageRunner:
    prompter = ScriptedPrompter(answers) if interactive else NoPrompts()
    return StageRunner(prompter, EchoTrail(), interactive=interactive)
