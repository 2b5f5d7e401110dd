"""Network selection: named NEAR networks, custom RPC URLs or offline mode."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from .config import TransferConfig
from .model import EndpointDescriptor
from .resolver import Option, StageError

if TYPE_CHECKING:
    from .resolver import StageRunner

logger = logging.getLogger(__name__)

CUSTOM_TAG = "custom"


@dataclass(frozen=True)
class NetworkOption:
    tag: str
    label: str
    rpc_url: str
    explorer_url: str | None = None


# Menu order is part of the interface: prompts list networks in this order.
NETWORKS = (
    NetworkOption(
        "testnet", "Testnet", "https://rpc.testnet.near.org", "https://explorer.testnet.near.org"
    ),
    NetworkOption("mainnet", "Mainnet", "https://rpc.mainnet.near.org", "https://explorer.near.org"),
    NetworkOption(
        "betanet", "Betanet", "https://rpc.betanet.near.org", "https://explorer.betanet.near.org"
    ),
)
NETWORK_OPTIONS = tuple(Option(network.tag, network.label) for network in NETWORKS) + (
    Option(CUSTOM_TAG, "Custom RPC endpoint"),
)
MODE_OPTIONS = (
    Option("online", "Online: check accounts and balances against a live network"),
    Option("offline", "Offline: build the transaction without any network access"),
)


def parse_rpc_url(text: str) -> str:
    """Syntactic check only; reachability surfaces later as an RPC error."""

    url = (text or "").strip()
    if not url:
        raise ValueError("RPC URL cannot be empty")
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"RPC URL must be an http(s) URL with a host: {url!r}")
    return url


def endpoint_for(tag: str, config: TransferConfig | None = None) -> EndpointDescriptor:
    """Return the endpoint of a named network, honoring configured overrides."""

    for network in NETWORKS:
        if network.tag == tag:
            break
    else:
        raise ValueError(f"Unknown network {tag!r}")
    rpc_url = network.rpc_url
    explorer_url = network.explorer_url
    if config is not None:
        rpc_url = config.rpc_urls.get(tag, rpc_url)
        explorer_url = config.explorer_urls.get(tag, explorer_url)
    return EndpointDescriptor(tag, rpc_url, explorer_url)


def resolve_endpoint(
    runner: "StageRunner",
    *,
    offline: bool = False,
    network: str | None = None,
    rpc_url: str | None = None,
    config: TransferConfig | None = None,
) -> EndpointDescriptor | None:
    """Resolve the endpoint for this run; ``None`` means offline."""

    if offline:
        if network is not None or rpc_url is not None:
            raise StageError("--offline cannot be combined with --network or --rpc-url")
        runner.trail.record("--offline")
        return None

    if network is None and rpc_url is not None:
        network = CUSTOM_TAG

    if network is None:
        mode = runner.choose(
            "Network (--network or --offline)",
            None,
            MODE_OPTIONS,
            prompt="How would you like to create the transaction?",
        )
        if mode.tag == "offline":
            runner.trail.record("--offline")
            return None

    choice = runner.choose(
        "Network", network, NETWORK_OPTIONS, prompt="Select the network to connect to"
    )
    if choice.tag == CUSTOM_TAG:
        url = runner.resolve(
            "RPC URL", rpc_url, parse=parse_rpc_url, prompt="What is the RPC endpoint?"
        )
        runner.trail.record("--network", CUSTOM_TAG, "--rpc-url", url)
        explorer_url = config.explorer_urls.get(CUSTOM_TAG) if config is not None else None
        return EndpointDescriptor(CUSTOM_TAG, url, explorer_url)

    if rpc_url is not None:
        raise StageError(f"--rpc-url is only valid with --network {CUSTOM_TAG}")
    endpoint = endpoint_for(choice.tag, config)
    logger.debug("Resolved network %s -> %s", endpoint.network_tag, endpoint.rpc_url)
    runner.trail.record("--network", choice.tag)
    return endpoint
