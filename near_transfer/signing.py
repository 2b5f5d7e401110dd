"""Signing strategies for the transfer pipeline.

Four mutually exclusive strategies complete the skeleton with a public key,
nonce and recent block hash, then sign it:

* ``private-key``: everything supplied by the operator; works offline.
* ``keychain``: key pair from the local credential store, nonce and block
  hash from the network.
* ``ledger``: public key and signature from a Ledger device, nonce and
  block hash from the network.
* ``manual``: nothing is signed; the unsigned transaction is displayed.

``SIGN_STRATEGIES`` is the single ordered table used both for the prompt menu
and for validating ``--sign-with``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Tuple

from .config import TransferConfig
from .keychain import CredentialStore
from .keys import PublicKey, SecretKey, base58_encode, parse_block_hash
from .ledger import HardwareDevice, parse_hd_path
from .model import BuildContext, EndpointDescriptor
from .resolver import Option
from .tx_builder import MAX_U64, SignedTransaction, Transaction

if TYPE_CHECKING:
    from .resolver import StageRunner
    from .stages import TransferRequest

logger = logging.getLogger(__name__)


class SigningError(RuntimeError):
    """Raised when a strategy cannot produce a signature for this run."""


@dataclass(frozen=True)
class SigningServices:
    """Collaborators a strategy may need at signing time."""

    rpc_for: Callable[[EndpointDescriptor], Any]
    credential_store: CredentialStore
    device_factory: Callable[[], HardwareDevice]
    notify: Callable[[str], None] = print


@dataclass(frozen=True)
class SigningResult:
    """The completed transaction, plus its signature unless signing was manual."""

    transaction: Transaction
    signed: SignedTransaction | None = None


def parse_nonce(text: str) -> int:
    try:
        nonce = int(str(text).strip())
    except ValueError as exc:
        raise ValueError(f"Nonce must be a non-negative integer: {text!r}") from exc
    if nonce < 0:
        raise ValueError(f"Nonce must be a non-negative integer: {text!r}")
    if nonce > MAX_U64:
        raise ValueError(f"Nonce must fit in 64 bits: {text!r}")
    return nonce


def fetch_nonce_and_block_hash(rpc: Any, account_id: str, public_key: PublicKey) -> Tuple[int, bytes]:
    """Next nonce for *public_key* on *account_id* and the block hash the query saw."""

    access_key = rpc.view_access_key(account_id, str(public_key))
    nonce = int(access_key["nonce"]) + 1
    block_hash = parse_block_hash(access_key["block_hash"])
    logger.debug("Access key %s on %s: next nonce %d", public_key, account_id, nonce)
    return nonce, block_hash


def _require_endpoint(context: BuildContext, strategy: str) -> EndpointDescriptor:
    if context.endpoint is None:
        raise SigningError(
            f"{strategy} signing needs a network connection to fetch the nonce and block hash; "
            "use --sign-with private-key or --sign-with manual offline"
        )
    return context.endpoint


def _collect_public_key(runner: "StageRunner", supplied: str | None) -> PublicKey:
    return runner.resolve(
        "Signer public key",
        supplied,
        parse=PublicKey.from_string,
        prompt="To create an unsigned transaction enter sender's public key",
    )


def _collect_nonce(runner: "StageRunner", supplied: str | None, public_key: PublicKey) -> int:
    return runner.resolve(
        "Nonce",
        supplied,
        parse=parse_nonce,
        prompt=(
            f"Enter transaction nonce for public key {public_key} "
            "(the access key's current nonce incremented by 1)"
        ),
    )


def _collect_block_hash(runner: "StageRunner", supplied: str | None) -> bytes:
    return runner.resolve(
        "Block hash",
        supplied,
        parse=parse_block_hash,
        prompt="Enter a recent block hash (base58)",
    )


@dataclass(frozen=True)
class SignPrivateKey:
    tag: ClassVar[str] = "private-key"
    label: ClassVar[str] = "Yes, I want to sign the transaction with my private key"
    produces_signature: ClassVar[bool] = True

    public_key: PublicKey
    secret_key: SecretKey
    nonce: int
    block_hash: bytes

    @classmethod
    def collect(
        cls, runner: "StageRunner", request: "TransferRequest", context: BuildContext, config: TransferConfig
    ) -> "SignPrivateKey":
        public_key = _collect_public_key(runner, request.signer_public_key)
        secret_key = runner.resolve(
            "Signer private key",
            request.signer_private_key,
            parse=SecretKey.from_string,
            prompt="Enter sender's private key",
        )
        nonce = _collect_nonce(runner, request.nonce, public_key)
        block_hash = _collect_block_hash(runner, request.block_hash)
        runner.trail.record(
            "--signer-public-key",
            str(public_key),
            "--signer-private-key",
            str(secret_key),
            "--nonce",
            str(nonce),
            "--block-hash",
            base58_encode(block_hash),
        )
        return cls(public_key, secret_key, nonce, block_hash)

    def sign(self, skeleton: Transaction, context: BuildContext, services: SigningServices) -> SigningResult:
        if self.secret_key.public_key != self.public_key:
            raise SigningError(
                f"The private key does not belong to public key {self.public_key}; refusing to sign"
            )
        transaction = skeleton.complete(self.public_key, self.nonce, self.block_hash)
        signature = self.secret_key.sign(transaction.signing_digest())
        return SigningResult(transaction, SignedTransaction(transaction, signature))


@dataclass(frozen=True)
class SignWithKeychain:
    tag: ClassVar[str] = "keychain"
    label: ClassVar[str] = "Yes, I want to sign the transaction with keychain"
    produces_signature: ClassVar[bool] = True

    @classmethod
    def collect(
        cls, runner: "StageRunner", request: "TransferRequest", context: BuildContext, config: TransferConfig
    ) -> "SignWithKeychain":
        _require_endpoint(context, "Keychain")
        return cls()

    def sign(self, skeleton: Transaction, context: BuildContext, services: SigningServices) -> SigningResult:
        endpoint = _require_endpoint(context, "Keychain")
        skeleton.ensure_ready_for_signing()
        key_pair = services.credential_store.get_key(skeleton.signer_id, endpoint.network_tag)
        nonce, block_hash = fetch_nonce_and_block_hash(
            services.rpc_for(endpoint), skeleton.signer_id, key_pair.public_key
        )
        transaction = skeleton.complete(key_pair.public_key, nonce, block_hash)
        signature = key_pair.secret_key.sign(transaction.signing_digest())
        logger.info("Signed transaction %s with keychain key %s", transaction.hash, key_pair.public_key)
        return SigningResult(transaction, SignedTransaction(transaction, signature))


@dataclass(frozen=True)
class SignWithLedger:
    tag: ClassVar[str] = "ledger"
    label: ClassVar[str] = "Yes, I want to sign the transaction with Ledger device"
    produces_signature: ClassVar[bool] = True

    hd_path: str

    @classmethod
    def collect(
        cls, runner: "StageRunner", request: "TransferRequest", context: BuildContext, config: TransferConfig
    ) -> "SignWithLedger":
        _require_endpoint(context, "Ledger")
        supplied = request.hd_path
        if supplied is None and not runner.interactive:
            supplied = config.hd_path

        def parse(text: str) -> str:
            parse_hd_path(text)
            return text.strip()

        hd_path = runner.resolve(
            "Seed phrase HD path",
            supplied,
            parse=parse,
            prompt="Enter seed phrase HD path (if not sure, keep the default)",
            default=config.hd_path,
        )
        runner.trail.record("--seed-phrase-hd-path", hd_path)
        return cls(hd_path)

    def sign(self, skeleton: Transaction, context: BuildContext, services: SigningServices) -> SigningResult:
        endpoint = _require_endpoint(context, "Ledger")
        skeleton.ensure_ready_for_signing()
        device = services.device_factory()
        try:
            public_key = device.get_public_key(self.hd_path)
            services.notify(f"Ledger public key for {self.hd_path}: {public_key}")
            nonce, block_hash = fetch_nonce_and_block_hash(
                services.rpc_for(endpoint), skeleton.signer_id, public_key
            )
            transaction = skeleton.complete(public_key, nonce, block_hash)
            services.notify("Confirm transaction signing on your Ledger device ...")
            signature = device.sign(self.hd_path, transaction.to_bytes())
        finally:
            device.close()
        return SigningResult(transaction, SignedTransaction(transaction, signature))


@dataclass(frozen=True)
class SignManually:
    tag: ClassVar[str] = "manual"
    label: ClassVar[str] = "No, I want to construct the transaction and sign it somewhere else"
    produces_signature: ClassVar[bool] = False

    public_key: PublicKey
    nonce: int
    block_hash: bytes

    @classmethod
    def collect(
        cls, runner: "StageRunner", request: "TransferRequest", context: BuildContext, config: TransferConfig
    ) -> "SignManually":
        public_key = _collect_public_key(runner, request.signer_public_key)
        nonce = _collect_nonce(runner, request.nonce, public_key)
        block_hash = _collect_block_hash(runner, request.block_hash)
        runner.trail.record(
            "--signer-public-key",
            str(public_key),
            "--nonce",
            str(nonce),
            "--block-hash",
            base58_encode(block_hash),
        )
        return cls(public_key, nonce, block_hash)

    def sign(self, skeleton: Transaction, context: BuildContext, services: SigningServices) -> SigningResult:
        return SigningResult(skeleton.complete(self.public_key, self.nonce, self.block_hash))


SIGN_STRATEGIES = (SignPrivateKey, SignWithKeychain, SignWithLedger, SignManually)
SIGN_OPTIONS = tuple(Option(strategy.tag, strategy.label) for strategy in SIGN_STRATEGIES)
_STRATEGIES_BY_TAG = {strategy.tag: strategy for strategy in SIGN_STRATEGIES}


def select_signing_strategy(
    runner: "StageRunner", request: "TransferRequest", context: BuildContext, config: TransferConfig
):
    """Resolve ``--sign-with`` and the chosen strategy's own inputs."""

    option = runner.choose(
        "Signing option",
        request.sign_with,
        SIGN_OPTIONS,
        prompt="Would you like to sign the transaction?",
    )
    runner.trail.record("--sign-with", option.tag)
    return _STRATEGIES_BY_TAG[option.tag].collect(runner, request, context, config)
