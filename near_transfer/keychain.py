"""Local credential store lookups.

Keys are read from the same layout NEAR tooling writes:
``<credentials_dir>/<network>/<account_id>.json`` containing ``public_key`` and
``private_key`` (``secret_key`` is accepted as an alias).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .keys import KeyFormatError, KeyPair

logger = logging.getLogger(__name__)


class KeychainError(RuntimeError):
    """Raised when no usable key is stored for an account."""


class CredentialStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def path_for(self, account_id: str, network: str) -> Path:
        return self.root / network / f"{account_id}.json"

    def get_key(self, account_id: str, network: str) -> KeyPair:
        path = self.path_for(account_id, network)
        if not path.exists():
            raise KeychainError(
                f"No key found in the keychain for account <{account_id}> on {network} (expected {path})"
            )
        logger.debug("Reading credentials from %s", path)
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as exc:
            raise KeychainError(f"Unable to read credentials file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise KeychainError(f"Credentials file {path} must contain a JSON object")

        public_key = data.get("public_key")
        private_key = data.get("private_key") or data.get("secret_key")
        if not public_key or not private_key:
            raise KeychainError(f"Credentials file {path} is missing public_key or private_key")
        try:
            return KeyPair.from_strings(public_key, private_key)
        except KeyFormatError as exc:
            raise KeychainError(f"Malformed key in {path}: {exc}") from exc
