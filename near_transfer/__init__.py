"""Staged builder, signer and submitter for NEAR token transfers."""

from .balance import format_near_amount, parse_near_amount
from .echo import EchoTrail
from .keys import KeyPair, PublicKey, SecretKey
from .model import (
    BuildContext,
    EndpointDescriptor,
    OutcomeKind,
    SubmissionOutcome,
    ValidationResult,
)
from .resolver import StageError, StageRunner
from .signing import SIGN_OPTIONS, SIGN_STRATEGIES, SigningError, SigningResult
from .stages import TransferPipeline, TransferRequest
from .submission import SUBMIT_OPTIONS, SubmissionEngine
from .tx_builder import SignedTransaction, Transaction, TransferAction

__all__ = [
    "BuildContext",
    "EchoTrail",
    "EndpointDescriptor",
    "KeyPair",
    "OutcomeKind",
    "PublicKey",
    "SIGN_OPTIONS",
    "SIGN_STRATEGIES",
    "SecretKey",
    "SignedTransaction",
    "SigningError",
    "SigningResult",
    "StageError",
    "StageRunner",
    "SubmissionEngine",
    "SubmissionOutcome",
    "SUBMIT_OPTIONS",
    "Transaction",
    "TransferAction",
    "TransferPipeline",
    "TransferRequest",
    "ValidationResult",
    "format_near_amount",
    "parse_near_amount",
]
