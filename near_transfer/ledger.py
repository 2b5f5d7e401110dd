"""Ledger hardware wallet access for the NEAR application.

The device speaks APDUs: ``get_public_key`` returns the raw ed25519 key for a
BIP32 path, and ``sign`` streams the path followed by the Borsh-serialized
transaction in chunks; the last chunk blocks until the user approves or
rejects on the device. There is no local timeout on that wait.

Transport is provided by ``ledgerblue`` (install the ``ledger`` extra).
"""

from __future__ import annotations

import logging
import struct
from typing import Any, Protocol, Tuple

from .keys import PUBLIC_KEY_LENGTH, SIGNATURE_LENGTH, PublicKey

logger = logging.getLogger(__name__)

HARDENED_OFFSET = 0x80000000
CLA = 0x80
INS_SIGN = 0x02
INS_GET_PUBLIC_KEY = 0x04
P1_LAST_CHUNK = 0x80
NETWORK_ID = ord("W")
CHUNK_SIZE = 250
SW_USER_REJECTED = 0x6985


class DeviceError(RuntimeError):
    """Raised when the device rejects a request or cannot be reached.

    ``reason`` is one of ``"rejected"``, ``"disconnected"``, ``"unavailable"``
    or ``"error"``.
    """

    def __init__(self, message: str, reason: str = "error") -> None:
        super().__init__(message)
        self.reason = reason


class HardwareDevice(Protocol):
    def get_public_key(self, hd_path: str) -> PublicKey:
        ...

    def sign(self, hd_path: str, transaction_bytes: bytes) -> bytes:
        ...

    def close(self) -> None:
        ...


def parse_hd_path(text: str) -> Tuple[int, ...]:
    """Parse ``"44'/397'/0'/0'/1'"`` into BIP32 path components."""

    path = (text or "").strip()
    if path.startswith("m/"):
        path = path[2:]
    if not path:
        raise ValueError("HD path cannot be empty")
    components = []
    for part in path.split("/"):
        hardened = part.endswith("'") or part.endswith("h")
        digits = part[:-1] if hardened else part
        if not digits.isdigit():
            raise ValueError(f"Invalid HD path component {part!r} in {text!r}")
        index = int(digits)
        if index >= HARDENED_OFFSET:
            raise ValueError(f"HD path component out of range: {part!r}")
        components.append(index | HARDENED_OFFSET if hardened else index)
    return tuple(components)


def hd_path_to_bytes(text: str) -> bytes:
    return b"".join(struct.pack(">I", component) for component in parse_hd_path(text))


class LedgerDevice:
    """NEAR Ledger app client over a ``ledgerblue`` dongle."""

    def __init__(self, dongle: Any) -> None:
        self._dongle = dongle

    @classmethod
    def connect(cls) -> "LedgerDevice":
        try:
            from ledgerblue.comm import getDongle
        except ImportError as exc:
            raise DeviceError(
                "Ledger support requires the ledgerblue package (pip install 'near-transfer[ledger]')",
                reason="unavailable",
            ) from exc
        try:
            dongle = getDongle(debug=False)
        except Exception as exc:
            raise DeviceError(f"No Ledger device found: {exc}", reason="disconnected") from exc
        return cls(dongle)

    def _exchange(self, ins: int, p1: int, data: bytes) -> bytes:
        apdu = bytes([CLA, ins, p1, NETWORK_ID, len(data)]) + data
        try:
            return bytes(self._dongle.exchange(apdu))
        except OSError as exc:
            raise DeviceError(f"Ledger device disconnected: {exc}", reason="disconnected") from exc
        except Exception as exc:
            status = getattr(exc, "sw", None)
            if status == SW_USER_REJECTED:
                raise DeviceError("Transaction was rejected on the Ledger device", reason="rejected") from exc
            if status is None:
                raise DeviceError(f"Ledger device disconnected: {exc}", reason="disconnected") from exc
            raise DeviceError(f"Ledger device returned status 0x{status:04x}") from exc

    def get_public_key(self, hd_path: str) -> PublicKey:
        response = self._exchange(INS_GET_PUBLIC_KEY, 0, hd_path_to_bytes(hd_path))
        if len(response) < PUBLIC_KEY_LENGTH:
            raise DeviceError(f"Unexpected public key response of {len(response)} bytes")
        return PublicKey(response[:PUBLIC_KEY_LENGTH])

    def sign(self, hd_path: str, transaction_bytes: bytes) -> bytes:
        payload = hd_path_to_bytes(hd_path) + transaction_bytes
        response = b""
        for offset in range(0, len(payload), CHUNK_SIZE):
            chunk = payload[offset : offset + CHUNK_SIZE]
            last = offset + CHUNK_SIZE >= len(payload)
            logger.debug("Sending sign chunk at offset %d (last=%s)", offset, last)
            response = self._exchange(INS_SIGN, P1_LAST_CHUNK if last else 0, chunk)
        if len(response) < SIGNATURE_LENGTH:
            raise DeviceError(f"Unexpected signature response of {len(response)} bytes")
        return response[:SIGNATURE_LENGTH]

    def close(self) -> None:
        close = getattr(self._dongle, "close", None)
        if close is not None:
            close()
