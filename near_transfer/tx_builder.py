"""Transaction skeleton and Borsh serialization for NEAR transfers.

The skeleton is filled in stage by stage (signer, receiver, transfer action)
and finally completed by a signing strategy with the public key, nonce and
recent block hash. Serialization follows NEAR's Borsh layout: little-endian
fixed-width integers, ``u32``-length-prefixed strings and vectors, and a
``u8`` discriminant for enums.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import struct
from dataclasses import dataclass, replace
from typing import Tuple

from .keys import ED25519_KEY_TYPE, HASH_LENGTH, SIGNATURE_LENGTH, PublicKey, base58_encode

logger = logging.getLogger(__name__)

# Position of ``Transfer`` in NEAR's ``Action`` enum.
TRANSFER_ACTION_INDEX = 3
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1


class TransactionIncompleteError(ValueError):
    """Raised when a skeleton is used before the required fields are set."""


class BorshWriter:
    """Minimal Borsh encoder for the types a transfer transaction uses."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def u8(self, value: int) -> "BorshWriter":
        self._parts.append(struct.pack("<B", value))
        return self

    def u32(self, value: int) -> "BorshWriter":
        self._parts.append(struct.pack("<I", value))
        return self

    def u64(self, value: int) -> "BorshWriter":
        if not 0 <= value <= MAX_U64:
            raise ValueError(f"u64 out of range: {value}")
        self._parts.append(struct.pack("<Q", value))
        return self

    def u128(self, value: int) -> "BorshWriter":
        if not 0 <= value <= MAX_U128:
            raise ValueError(f"u128 out of range: {value}")
        self._parts.append(value.to_bytes(16, "little"))
        return self

    def string(self, value: str) -> "BorshWriter":
        encoded = value.encode("utf-8")
        self.u32(len(encoded))
        self._parts.append(encoded)
        return self

    def fixed(self, value: bytes) -> "BorshWriter":
        self._parts.append(bytes(value))
        return self

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


@dataclass(frozen=True)
class TransferAction:
    deposit: int

    def __post_init__(self) -> None:
        if not 0 <= self.deposit <= MAX_U128:
            raise ValueError(f"Transfer deposit out of range: {self.deposit}")

    def serialize(self, writer: BorshWriter) -> None:
        writer.u8(TRANSFER_ACTION_INDEX).u128(self.deposit)


@dataclass(frozen=True)
class Transaction:
    """Unsigned transaction skeleton.

    ``signer_id``, ``receiver_id`` and ``actions`` are set by the pipeline
    stages; ``public_key``, ``nonce`` and ``block_hash`` are supplied only by
    the signing strategy through :meth:`complete`.
    """

    signer_id: str | None = None
    receiver_id: str | None = None
    actions: Tuple[TransferAction, ...] = ()
    public_key: PublicKey | None = None
    nonce: int | None = None
    block_hash: bytes | None = None

    def with_signer(self, signer_id: str) -> "Transaction":
        return replace(self, signer_id=signer_id)

    def with_receiver(self, receiver_id: str) -> "Transaction":
        return replace(self, receiver_id=receiver_id)

    def with_action(self, action: TransferAction) -> "Transaction":
        return replace(self, actions=self.actions + (action,))

    def ensure_ready_for_signing(self) -> None:
        missing = [
            name
            for name, value in (
                ("signer_id", self.signer_id),
                ("receiver_id", self.receiver_id),
                ("actions", self.actions),
            )
            if not value
        ]
        if missing:
            raise TransactionIncompleteError(
                f"Transaction is missing {', '.join(missing)} before signing"
            )

    def complete(self, public_key: PublicKey, nonce: int, block_hash: bytes) -> "Transaction":
        """Return a copy carrying the strategy-supplied signing fields."""

        self.ensure_ready_for_signing()
        if len(block_hash) != HASH_LENGTH:
            raise ValueError(f"Block hash must be {HASH_LENGTH} bytes")
        if not 0 <= nonce <= MAX_U64:
            raise ValueError(f"Nonce out of range: {nonce}")
        return replace(self, public_key=public_key, nonce=nonce, block_hash=block_hash)

    @property
    def is_complete(self) -> bool:
        return self.public_key is not None and self.nonce is not None and self.block_hash is not None

    def serialize(self, writer: BorshWriter) -> None:
        if not self.is_complete:
            raise TransactionIncompleteError(
                "Transaction needs a public key, nonce and block hash before serialization"
            )
        self.ensure_ready_for_signing()
        writer.string(self.signer_id)
        writer.u8(ED25519_KEY_TYPE).fixed(self.public_key.data)
        writer.u64(self.nonce)
        writer.string(self.receiver_id)
        writer.fixed(self.block_hash)
        writer.u32(len(self.actions))
        for action in self.actions:
            action.serialize(writer)

    def to_bytes(self) -> bytes:
        writer = BorshWriter()
        self.serialize(writer)
        return writer.getvalue()

    def to_base64(self) -> str:
        return base64.b64encode(self.to_bytes()).decode("ascii")

    def signing_digest(self) -> bytes:
        """SHA-256 of the serialized transaction; this is what gets signed."""

        return hashlib.sha256(self.to_bytes()).digest()

    @property
    def hash(self) -> str:
        return base58_encode(self.signing_digest())


@dataclass(frozen=True)
class SignedTransaction:
    transaction: Transaction
    signature: bytes

    def __post_init__(self) -> None:
        if len(self.signature) != SIGNATURE_LENGTH:
            raise ValueError(f"ed25519 signature must be {SIGNATURE_LENGTH} bytes")

    def to_bytes(self) -> bytes:
        writer = BorshWriter()
        self.transaction.serialize(writer)
        writer.u8(ED25519_KEY_TYPE).fixed(self.signature)
        return writer.getvalue()

    def to_base64(self) -> str:
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @property
    def hash(self) -> str:
        return self.transaction.hash


def build_transfer_skeleton(signer_id: str, receiver_id: str, deposit: int) -> Transaction:
    """Convenience constructor for a single-transfer skeleton."""

    skeleton = Transaction().with_signer(signer_id).with_receiver(receiver_id)
    logger.debug("Built transfer skeleton %s -> %s (%d yocto)", signer_id, receiver_id, deposit)
    return skeleton.with_action(TransferAction(deposit))
