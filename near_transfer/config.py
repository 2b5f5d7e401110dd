"""Shared configuration loader for near-transfer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".near-transfer.yaml"
DEFAULT_CREDENTIALS_DIR = Path.home() / ".near-credentials"
DEFAULT_RPC_TIMEOUT = 30.0
DEFAULT_HD_PATH = "44'/397'/0'/0'/1'"
ENV_PREFIX = "NEAR_TRANSFER_"
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class TransferConfig:
    """Resolved settings shared by the CLI, RPC client and signers.

    ``rpc_urls`` and ``explorer_urls`` only hold overrides keyed by network
    tag; the built-in endpoints live in :mod:`near_transfer.network`.
    """

    rpc_urls: dict[str, str] = field(default_factory=dict)
    explorer_urls: dict[str, str] = field(default_factory=dict)
    credentials_dir: Path = DEFAULT_CREDENTIALS_DIR
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    hd_path: str = DEFAULT_HD_PATH


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _coerce_timeout(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid RPC timeout in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"RPC timeout in {source} must be positive: {raw}")
    return value


def _check_url(raw: str, *, source: str) -> str:
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(f"Invalid RPC endpoint URL in {source}: {raw}")
    return raw


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _network_urls(
    networks_section: Mapping[str, Any], env_map: Mapping[str, str], *, path: Path
) -> tuple[dict[str, str], dict[str, str]]:
    rpc_urls: dict[str, str] = {}
    explorer_urls: dict[str, str] = {}
    for tag, entry in networks_section.items():
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Expected 'networks.{tag}' to be a mapping in {path}")
        if entry.get("rpc_url"):
            rpc_urls[tag] = _check_url(str(entry["rpc_url"]), source=f"{path} networks.{tag}")
        if entry.get("explorer_url"):
            explorer_urls[tag] = str(entry["explorer_url"])

    for key, value in env_map.items():
        if not (key.startswith(ENV_PREFIX) and key.endswith("_RPC_URL")) or not value:
            continue
        tag = key[len(ENV_PREFIX) : -len("_RPC_URL")].lower()
        if tag:
            rpc_urls[tag] = _check_url(value, source=f"environment {key}")
    return rpc_urls, explorer_urls


def load_transfer_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> TransferConfig:
    """Load settings from environment variables and optional YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    networks_section = file_config.get("networks") or {}
    if not isinstance(networks_section, dict):
        raise ConfigurationError(f"Expected 'networks' to be a mapping in {path}")

    override_map = dict(overrides or {})
    rpc_urls, explorer_urls = _network_urls(networks_section, env_map, path=path)

    credentials_dir = _first_value(
        override_map.get("credentials_dir"),
        env_map.get(f"{ENV_PREFIX}CREDENTIALS_DIR"),
        file_config.get("credentials_dir"),
        default=DEFAULT_CREDENTIALS_DIR,
    )
    rpc_timeout = _first_value(
        _coerce_timeout(override_map.get("rpc_timeout"), source="overrides"),
        _coerce_timeout(env_map.get(f"{ENV_PREFIX}RPC_TIMEOUT"), source="environment"),
        _coerce_timeout(file_config.get("rpc_timeout"), source=f"{path} rpc_timeout"),
        default=DEFAULT_RPC_TIMEOUT,
    )
    hd_path = _first_value(
        override_map.get("hd_path"),
        env_map.get(f"{ENV_PREFIX}HD_PATH"),
        file_config.get("hd_path"),
        default=DEFAULT_HD_PATH,
    )

    return TransferConfig(
        rpc_urls=rpc_urls,
        explorer_urls=explorer_urls,
        credentials_dir=Path(credentials_dir).expanduser(),
        rpc_timeout=rpc_timeout,
        hd_path=str(hd_path),
    )
