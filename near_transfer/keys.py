"""Key and hash text encodings used by NEAR.

Public keys, secret keys and block hashes travel as Base58 strings; keys
carry a curve prefix (``ed25519:``). Only ed25519 is supported. Signing is
delegated to :mod:`cryptography`.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass
from typing import List

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

b58_digits = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

ED25519_PREFIX = "ed25519:"
ED25519_KEY_TYPE = 0
PUBLIC_KEY_LENGTH = 32
SEED_LENGTH = 32
SIGNATURE_LENGTH = 64
HASH_LENGTH = 32


class KeyFormatError(ValueError):
    """Raised when key or hash text cannot be decoded."""


def base58_encode(data: bytes) -> str:
    """Encode raw bytes as plain Base58 (no version byte, no checksum)."""

    value = int("0x0" + binascii.hexlify(data).decode("utf8"), 16)

    output: List[str] = []
    while value > 0:
        value, remainder = divmod(value, 58)
        output.append(b58_digits[remainder])
    encoded = "".join(output[::-1])

    leading_zero_count = 0
    for byte in data:
        if byte == 0:
            leading_zero_count += 1
        else:
            break

    return b58_digits[0] * leading_zero_count + encoded


def base58_decode(value: str) -> bytes:
    """Decode a plain Base58 string."""

    number = 0
    for character in value:
        number *= 58
        if character not in b58_digits:
            raise KeyFormatError(f"Invalid Base58 character: {character}")
        number += b58_digits.index(character)

    if number:
        hex_value = f"{number:x}"
        if len(hex_value) % 2:
            hex_value = "0" + hex_value
        decoded = binascii.unhexlify(hex_value.encode("utf8"))
    else:
        decoded = b""

    padding = 0
    for character in value:
        if character == b58_digits[0]:
            padding += 1
        else:
            break
    return b"\x00" * padding + decoded


def _strip_prefix(text: str) -> str:
    text = text.strip()
    if ":" in text:
        curve, _, body = text.partition(":")
        if curve.lower() != "ed25519":
            raise KeyFormatError(f"Unsupported key type {curve!r}; only ed25519 keys are supported")
        return body
    return text


@dataclass(frozen=True)
class PublicKey:
    """An ed25519 public key (32 raw bytes)."""

    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) != PUBLIC_KEY_LENGTH:
            raise KeyFormatError(
                f"ed25519 public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(self.data)}"
            )

    @classmethod
    def from_string(cls, text: str) -> "PublicKey":
        return cls(base58_decode(_strip_prefix(text)))

    def __str__(self) -> str:
        return ED25519_PREFIX + base58_encode(self.data)


@dataclass(frozen=True)
class SecretKey:
    """An ed25519 secret key in NEAR's 64-byte (seed + public key) form."""

    seed: bytes

    def __post_init__(self) -> None:
        if len(self.seed) != SEED_LENGTH:
            raise KeyFormatError(f"ed25519 seed must be {SEED_LENGTH} bytes, got {len(self.seed)}")

    @classmethod
    def from_string(cls, text: str) -> "SecretKey":
        raw = base58_decode(_strip_prefix(text))
        if len(raw) not in {SEED_LENGTH, SEED_LENGTH + PUBLIC_KEY_LENGTH}:
            raise KeyFormatError(f"ed25519 secret key must be 32 or 64 bytes, got {len(raw)}")
        key = cls(raw[:SEED_LENGTH])
        if len(raw) == SEED_LENGTH + PUBLIC_KEY_LENGTH and raw[SEED_LENGTH:] != key.public_key.data:
            raise KeyFormatError("Secret key embeds a public key that does not match its seed")
        return key

    @property
    def _private(self) -> Ed25519PrivateKey:
        return Ed25519PrivateKey.from_private_bytes(self.seed)

    @property
    def public_key(self) -> PublicKey:
        raw = self._private.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return PublicKey(raw)

    def sign(self, message: bytes) -> bytes:
        return self._private.sign(message)

    def __str__(self) -> str:
        return ED25519_PREFIX + base58_encode(self.seed + self.public_key.data)


@dataclass(frozen=True)
class KeyPair:
    """Public/secret key pair as read from a credential store."""

    public_key: PublicKey
    secret_key: SecretKey

    @classmethod
    def from_strings(cls, public_key: str, secret_key: str) -> "KeyPair":
        public = PublicKey.from_string(public_key)
        secret = SecretKey.from_string(secret_key)
        if secret.public_key != public:
            raise KeyFormatError(
                f"Private key does not belong to public key {public}"
            )
        return cls(public, secret)


def parse_block_hash(text: str) -> bytes:
    """Decode a Base58 block hash into its 32 raw bytes."""

    raw = base58_decode(text.strip())
    if len(raw) != HASH_LENGTH:
        raise KeyFormatError(f"Block hash must decode to {HASH_LENGTH} bytes, got {len(raw)}")
    return raw
