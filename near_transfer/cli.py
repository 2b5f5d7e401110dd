"""Command line interface for near-transfer.

Every flag is optional. Whatever is missing is asked for interactively, and at
the end of the run the tool prints the equivalent fully-specified command so
the same transfer can be repeated without prompts.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Sequence

from .config import ConfigurationError, load_transfer_config, set_default_config_path
from .console import ConsolePrompter
from .echo import PROGRAM_NAME, TRANSFER_COMMAND, EchoTrail
from .keychain import KeychainError
from .ledger import DeviceError
from .model import OutcomeKind
from .resolver import StageError, StageRunner
from .rpc_client import RPCError, RPCTransportError, format_rpc_hint
from .signing import SigningError
from .stages import TransferPipeline, TransferRequest
from .submission import describe_outcome
from .tx_builder import TransactionIncompleteError

logger = logging.getLogger(__name__)

_GLOBAL_FLAGS_WITH_VALUE = {"--config"}
_GLOBAL_FLAGS = {"--verbose", "-v", "--help", "-h"}


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _add_transfer_arguments(parser: argparse.ArgumentParser) -> None:
    # Values are validated by the stages so interactive runs can re-prompt.
    network_group = parser.add_argument_group("network")
    network_group.add_argument(
        "--offline", action="store_true", help="Build the transaction without any network access"
    )
    network_group.add_argument(
        "--network", help="Network to use: testnet, mainnet, betanet or custom"
    )
    network_group.add_argument("--rpc-url", help="RPC endpoint URL (implies --network custom)")

    transfer_group = parser.add_argument_group("transfer")
    transfer_group.add_argument("--sender", help="Account ID of the sender")
    transfer_group.add_argument("--receiver", help="Account ID of the receiver")
    transfer_group.add_argument(
        "--amount", help="Amount to transfer, e.g. 10NEAR, 0.5near or 10000yoctonear"
    )

    signing_group = parser.add_argument_group("signing")
    signing_group.add_argument(
        "--sign-with", help="Signing option: private-key, keychain, ledger or manual"
    )
    signing_group.add_argument("--signer-public-key", help="ed25519:<base58> public key of the signer")
    signing_group.add_argument(
        "--signer-private-key", help="ed25519:<base58> private key (private-key signing only)"
    )
    signing_group.add_argument("--nonce", help="Access key nonce to use (current nonce + 1)")
    signing_group.add_argument("--block-hash", help="Recent block hash (base58)")
    signing_group.add_argument(
        "--seed-phrase-hd-path", dest="hd_path", help="Ledger HD path (default: 44'/397'/0'/0'/1')"
    )

    parser.add_argument("--submit", help="What to do with the signed transaction: send or display")
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Fail instead of prompting when a value is missing or invalid",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME, description="Build, sign and send NEAR token transfers"
    )
    parser.add_argument("--config", help="Path to a YAML config file (default: ~/.near-transfer.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    transfer_parser = subparsers.add_parser(
        TRANSFER_COMMAND, help="transfer NEAR tokens from one account to another"
    )
    _add_transfer_arguments(transfer_parser)
    return parser


def _with_default_command(argv: Sequence[str]) -> List[str]:
    """Insert ``transfer`` after the global options when no command was given."""

    tokens = list(argv)
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in _GLOBAL_FLAGS:
            index += 1
        elif token in _GLOBAL_FLAGS_WITH_VALUE:
            index += 2
        elif token.split("=", 1)[0] in _GLOBAL_FLAGS_WITH_VALUE:
            index += 1
        else:
            break
    if TRANSFER_COMMAND not in tokens[index : index + 1] and not {"-h", "--help"} & set(tokens[:index]):
        tokens.insert(index, TRANSFER_COMMAND)
    return tokens


def request_from_args(args: argparse.Namespace) -> TransferRequest:
    return TransferRequest(
        offline=args.offline,
        network=args.network,
        rpc_url=args.rpc_url,
        sender=args.sender,
        receiver=args.receiver,
        amount=args.amount,
        sign_with=args.sign_with,
        signer_public_key=args.signer_public_key,
        signer_private_key=args.signer_private_key,
        nonce=args.nonce,
        block_hash=args.block_hash,
        hd_path=args.hd_path,
        submit=args.submit,
    )


def _format_error(exc: BaseException) -> str:
    message = f"error: {exc}\n"
    hint = format_rpc_hint(exc) if isinstance(exc, RPCError) else None
    if hint:
        message += f"hint: {hint}\n"
    return message


def cmd_transfer(args: argparse.Namespace, trail: EchoTrail) -> None:
    if args.config:
        set_default_config_path(args.config)
    config = load_transfer_config()
    runner = StageRunner(ConsolePrompter(), trail, interactive=not args.non_interactive)
    pipeline = TransferPipeline(runner, config=config)
    plan = pipeline.build(request_from_args(args))
    outcome = pipeline.execute(plan)
    if outcome.kind is OutcomeKind.COMMITTED:
        for line in describe_outcome(outcome, plan.context.endpoint):
            print(line)


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(_with_default_command(sys.argv[1:] if argv is None else argv))
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    trail = EchoTrail()
    error: str | None = None
    try:
        if args.command == TRANSFER_COMMAND:
            cmd_transfer(args, trail)
        else:  # pragma: no cover - the default command is always inserted
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        StageError,
        SigningError,
        KeychainError,
        DeviceError,
        RPCError,
        RPCTransportError,
        TransactionIncompleteError,
    ) as exc:
        logger.debug("Transfer aborted", exc_info=True)
        error = _format_error(exc)
    finally:
        if len(trail):
            global_args = ["--config", args.config] if args.config else []
            print("\nYour console command:")
            print(trail.command_line(global_args))
    if error is not None:
        parser.exit(1, error)


if __name__ == "__main__":
    main(sys.argv[1:])
