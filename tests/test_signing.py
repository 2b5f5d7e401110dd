from __future__ import annotations

import hashlib
import json
import struct
import sys
import types
from pathlib import Path

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from near_transfer.config import TransferConfig
from near_transfer.keychain import CredentialStore, KeychainError
from near_transfer.keys import SecretKey
from near_transfer.ledger import DeviceError, LedgerDevice, hd_path_to_bytes, parse_hd_path
from near_transfer.model import BuildContext
from near_transfer.resolver import StageError
from near_transfer.signing import (
    SIGN_OPTIONS,
    SignManually,
    SignPrivateKey,
    SignWithKeychain,
    SignWithLedger,
    SigningError,
    SigningServices,
    select_signing_strategy,
)
from near_transfer.stages import TransferRequest
from near_transfer.tx_builder import build_transfer_skeleton

from conftest import BLOCK_HASH, BLOCK_HASH_B58, StubRPC, make_runner


def _verify(public_key, signature: bytes, tx_bytes: bytes) -> None:
    Ed25519PublicKey.from_public_bytes(public_key.data).verify(signature, hashlib.sha256(tx_bytes).digest())


def _services(rpc=None, store=None, device=None, notices=None) -> SigningServices:
    return SigningServices(
        rpc_for=lambda endpoint: rpc,
        credential_store=store or CredentialStore(Path("/nonexistent")),
        device_factory=lambda: device,
        notify=(notices.append if notices is not None else lambda message: None),
    )


class StubDevice:
    def __init__(self, secret_key, reject: bool = False) -> None:
        self.secret_key = secret_key
        self.reject = reject
        self.signed_payloads = []
        self.closed = False

    def get_public_key(self, hd_path: str):
        return self.secret_key.public_key

    def sign(self, hd_path: str, transaction_bytes: bytes) -> bytes:
        if self.reject:
            raise DeviceError("Transaction was rejected on the Ledger device", reason="rejected")
        self.signed_payloads.append(transaction_bytes)
        return self.secret_key.sign(hashlib.sha256(transaction_bytes).digest())

    def close(self) -> None:
        self.closed = True


def test_sign_options_are_listed_in_fixed_order() -> None:
    assert [option.tag for option in SIGN_OPTIONS] == ["private-key", "keychain", "ledger", "manual"]


def test_private_key_signature_verifies(secret_key) -> None:
    skeleton = build_transfer_skeleton("alice", "bob", 10)
    strategy = SignPrivateKey(secret_key.public_key, secret_key, 5, BLOCK_HASH)

    result = strategy.sign(skeleton, BuildContext(), _services())

    assert result.transaction.nonce == 5
    assert result.transaction.public_key == secret_key.public_key
    _verify(secret_key.public_key, result.signed.signature, result.transaction.to_bytes())
    assert skeleton.public_key is None


def test_private_key_mismatch_is_refused(secret_key) -> None:
    other = SecretKey(bytes([1] * 32))
    strategy = SignPrivateKey(other.public_key, secret_key, 5, BLOCK_HASH)

    with pytest.raises(SigningError, match="does not belong"):
        strategy.sign(build_transfer_skeleton("alice", "bob", 10), BuildContext(), _services())


def test_private_key_inputs_are_collected_and_echoed(secret_key) -> None:
    runner = make_runner(interactive=False)
    request = TransferRequest(
        sign_with="private-key",
        signer_public_key=str(secret_key.public_key),
        signer_private_key=str(secret_key),
        nonce="5",
        block_hash=BLOCK_HASH_B58,
    )

    strategy = select_signing_strategy(runner, request, BuildContext(), TransferConfig())

    assert strategy == SignPrivateKey(secret_key.public_key, secret_key, 5, BLOCK_HASH)
    assert runner.trail.tokens == [
        "--sign-with",
        "private-key",
        "--signer-public-key",
        str(secret_key.public_key),
        "--signer-private-key",
        str(secret_key),
        "--nonce",
        "5",
        "--block-hash",
        BLOCK_HASH_B58,
    ]


def test_malformed_public_key_is_reprompted(secret_key) -> None:
    runner = make_runner([str(secret_key.public_key), "3", BLOCK_HASH_B58])
    request = TransferRequest(sign_with="manual", signer_public_key="ed25519:not-a-key")

    strategy = select_signing_strategy(runner, request, BuildContext(), TransferConfig())

    assert strategy.public_key == secret_key.public_key
    assert len(runner.prompter.notices) == 1


def test_negative_nonce_is_rejected(secret_key) -> None:
    runner = make_runner(interactive=False)
    request = TransferRequest(sign_with="manual", signer_public_key=str(secret_key.public_key), nonce="-1")

    with pytest.raises(StageError, match="Nonce"):
        select_signing_strategy(runner, request, BuildContext(), TransferConfig())


def test_manual_signing_returns_unsigned_transaction(secret_key) -> None:
    strategy = SignManually(secret_key.public_key, 9, BLOCK_HASH)

    result = strategy.sign(build_transfer_skeleton("alice", "bob", 10), BuildContext(), _services())

    assert result.signed is None
    assert result.transaction.nonce == 9


def _write_credentials(root: Path, network: str, account_id: str, secret_key) -> None:
    directory = root / network
    directory.mkdir(parents=True)
    (directory / f"{account_id}.json").write_text(
        json.dumps(
            {
                "account_id": account_id,
                "public_key": str(secret_key.public_key),
                "private_key": str(secret_key),
            }
        )
    )


def test_keychain_signing_fetches_nonce_and_block_hash(tmp_path: Path, secret_key, testnet) -> None:
    _write_credentials(tmp_path, "testnet", "alice.testnet", secret_key)
    rpc = StubRPC(access_key_nonce=41)
    services = _services(rpc=rpc, store=CredentialStore(tmp_path))

    result = SignWithKeychain().sign(
        build_transfer_skeleton("alice.testnet", "bob.testnet", 10), BuildContext(endpoint=testnet), services
    )

    assert result.transaction.nonce == 42
    assert result.transaction.block_hash == BLOCK_HASH
    assert rpc.calls == [("view_access_key", ("alice.testnet", str(secret_key.public_key)))]
    _verify(secret_key.public_key, result.signed.signature, result.transaction.to_bytes())


def test_keychain_without_credentials_fails(tmp_path: Path, testnet) -> None:
    services = _services(rpc=StubRPC(), store=CredentialStore(tmp_path))

    with pytest.raises(KeychainError, match="No key found"):
        SignWithKeychain().sign(
            build_transfer_skeleton("alice.testnet", "bob.testnet", 10), BuildContext(endpoint=testnet), services
        )


def test_keychain_with_malformed_file_fails(tmp_path: Path) -> None:
    (tmp_path / "testnet").mkdir()
    (tmp_path / "testnet" / "alice.testnet.json").write_text("{not json")

    with pytest.raises(KeychainError, match="Unable to read"):
        CredentialStore(tmp_path).get_key("alice.testnet", "testnet")


def test_keychain_requires_network() -> None:
    runner = make_runner(interactive=False)

    with pytest.raises(SigningError, match="network connection"):
        select_signing_strategy(runner, TransferRequest(sign_with="keychain"), BuildContext(), TransferConfig())


def test_ledger_defaults_to_configured_hd_path(testnet) -> None:
    runner = make_runner(interactive=False)
    config = TransferConfig(hd_path="44'/397'/0'/0'/2'")

    strategy = select_signing_strategy(
        runner, TransferRequest(sign_with="ledger"), BuildContext(endpoint=testnet), config
    )

    assert strategy == SignWithLedger("44'/397'/0'/0'/2'")
    assert runner.trail.tokens[-2:] == ["--seed-phrase-hd-path", "44'/397'/0'/0'/2'"]


def test_ledger_signing_uses_device_key(secret_key, testnet) -> None:
    device = StubDevice(secret_key)
    notices = []
    services = _services(rpc=StubRPC(access_key_nonce=1), device=device, notices=notices)

    result = SignWithLedger("44'/397'/0'/0'/1'").sign(
        build_transfer_skeleton("alice.testnet", "bob.testnet", 10), BuildContext(endpoint=testnet), services
    )

    assert device.signed_payloads == [result.transaction.to_bytes()]
    assert device.closed is True
    assert result.transaction.nonce == 2
    assert any("Ledger" in notice for notice in notices)
    _verify(secret_key.public_key, result.signed.signature, result.transaction.to_bytes())


def test_ledger_rejection_propagates(secret_key, testnet) -> None:
    device = StubDevice(secret_key, reject=True)
    services = _services(rpc=StubRPC(), device=device)

    with pytest.raises(DeviceError) as excinfo:
        SignWithLedger("44'/397'/0'/0'/1'").sign(
            build_transfer_skeleton("alice.testnet", "bob.testnet", 10), BuildContext(endpoint=testnet), services
        )

    assert excinfo.value.reason == "rejected"
    assert device.closed is True


def test_hd_path_is_encoded_as_hardened_components() -> None:
    assert parse_hd_path("m/44'/397'/0") == (0x8000002C, 0x8000018D, 0)
    assert hd_path_to_bytes("44'/397'/0'/0'/1'") == struct.pack(
        ">5I", 0x8000002C, 0x8000018D, 0x80000000, 0x80000000, 0x80000001
    )
    with pytest.raises(ValueError):
        parse_hd_path("44'/abc")


class FakeDongleError(Exception):
    def __init__(self, sw: int) -> None:
        super().__init__(f"status {sw:#x}")
        self.sw = sw


class FakeDongle:
    def __init__(self, fail_with: int | None = None) -> None:
        self.apdus = []
        self.fail_with = fail_with

    def exchange(self, apdu: bytes) -> bytes:
        self.apdus.append(apdu)
        if self.fail_with is not None:
            raise FakeDongleError(self.fail_with)
        return bytes(64)


def test_ledger_device_streams_payload_in_chunks() -> None:
    dongle = FakeDongle()
    device = LedgerDevice(dongle)

    signature = device.sign("44'/397'/0'/0'/1'", b"\x01" * 300)

    assert signature == bytes(64)
    assert len(dongle.apdus) == 2
    first, last = dongle.apdus
    assert first[:4] == bytes([0x80, 0x02, 0x00, ord("W")])
    assert first[4] == 250
    assert last[2] == 0x80
    assert last[4] == 20 + 300 - 250


def test_ledger_device_maps_user_rejection() -> None:
    device = LedgerDevice(FakeDongle(fail_with=0x6985))

    with pytest.raises(DeviceError) as excinfo:
        device.get_public_key("44'/397'/0'/0'/1'")

    assert excinfo.value.reason == "rejected"


class RaisingDongle:
    def __init__(self, error: Exception) -> None:
        self.error = error

    def exchange(self, apdu: bytes) -> bytes:
        raise self.error


@pytest.mark.parametrize(
    "error",
    [OSError("device unplugged"), RuntimeError("HID read failed")],
    ids=["os-error", "no-status-word"],
)
def test_ledger_device_maps_lost_connection(error: Exception) -> None:
    device = LedgerDevice(RaisingDongle(error))

    with pytest.raises(DeviceError) as excinfo:
        device.sign("44'/397'/0'/0'/1'", b"\x01" * 10)

    assert excinfo.value.reason == "disconnected"


def test_ledger_connect_without_device_is_disconnected(monkeypatch: pytest.MonkeyPatch) -> None:
    def get_dongle(debug=False):
        raise IOError("No dongle found")

    comm = types.ModuleType("ledgerblue.comm")
    comm.getDongle = get_dongle
    monkeypatch.setitem(sys.modules, "ledgerblue", types.ModuleType("ledgerblue"))
    monkeypatch.setitem(sys.modules, "ledgerblue.comm", comm)

    with pytest.raises(DeviceError) as excinfo:
        LedgerDevice.connect()

    assert excinfo.value.reason == "disconnected"


def test_nonce_must_fit_in_u64(secret_key) -> None:
    runner = make_runner(interactive=False)
    request = TransferRequest(
        sign_with="manual",
        signer_public_key=str(secret_key.public_key),
        nonce=str(2**64),
        block_hash=BLOCK_HASH_B58,
    )

    with pytest.raises(StageError, match="64 bits"):
        select_signing_strategy(runner, request, BuildContext(), TransferConfig())

    largest = TransferRequest(
        sign_with="manual",
        signer_public_key=str(secret_key.public_key),
        nonce=str(2**64 - 1),
        block_hash=BLOCK_HASH_B58,
    )
    strategy = select_signing_strategy(make_runner(interactive=False), largest, BuildContext(), TransferConfig())
    assert strategy.nonce == 2**64 - 1


def test_oversized_nonce_is_reprompted(secret_key) -> None:
    runner = make_runner(["8"])
    request = TransferRequest(
        sign_with="manual",
        signer_public_key=str(secret_key.public_key),
        nonce=str(2**64),
        block_hash=BLOCK_HASH_B58,
    )

    strategy = select_signing_strategy(runner, request, BuildContext(), TransferConfig())

    assert strategy.nonce == 8
    assert any("64 bits" in notice for notice in runner.prompter.notices)
    tokens = runner.trail.tokens
    assert tokens[tokens.index("--nonce") + 1] == "8"
