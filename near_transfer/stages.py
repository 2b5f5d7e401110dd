"""The transfer pipeline: network, sender, receiver, amount, signing, submission.

Each stage takes the value supplied on the command line (if any), resolves it
through :class:`~near_transfer.resolver.StageRunner` and hands an immutable
value to the next stage. Stages append the flags they resolved to the run's
:class:`~near_transfer.echo.EchoTrail`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict

from .balance import AMOUNT_EXAMPLES, format_near_amount, parse_near_amount
from .config import TransferConfig
from .keychain import CredentialStore
from .ledger import HardwareDevice, LedgerDevice
from .model import (
    AccountStatus,
    BuildContext,
    EndpointDescriptor,
    SubmissionOutcome,
    is_implicit_account,
    parse_account_id,
)
from .network import resolve_endpoint
from .resolver import ACCEPT, StageRunner, Verdict
from .rpc_client import NearRPCClient
from .signing import SigningServices, select_signing_strategy
from .submission import DISPLAY_TAG, SubmissionEngine, submit_options
from .tx_builder import Transaction, TransferAction
from .validator import AccountValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferRequest:
    """Raw values supplied up front; ``None`` means "ask when interactive"."""

    offline: bool = False
    network: str | None = None
    rpc_url: str | None = None
    sender: str | None = None
    receiver: str | None = None
    amount: str | None = None
    sign_with: str | None = None
    signer_public_key: str | None = None
    signer_private_key: str | None = None
    nonce: str | None = None
    block_hash: str | None = None
    hd_path: str | None = None
    submit: str | None = None


@dataclass(frozen=True)
class TransferPlan:
    context: BuildContext
    skeleton: Transaction
    strategy: Any
    submit: str


def _must_exist(validator: AccountValidator, endpoint: EndpointDescriptor | None, *, implicit_ok: bool):
    def check(account_id: str) -> Verdict:
        result = validator.validate(endpoint, account_id)
        if result.status is AccountStatus.NOT_FOUND:
            if implicit_ok and is_implicit_account(account_id):
                logger.debug("Accepting implicit account %s", account_id)
                return ACCEPT
            return Verdict.reject(f"Account <{account_id}> doesn't exist")
        return ACCEPT

    return check


def resolve_sender(
    runner: StageRunner, validator: AccountValidator, context: BuildContext, supplied: str | None
) -> str:
    sender = runner.resolve(
        "Sender account ID",
        supplied,
        parse=parse_account_id,
        prompt="What is the account ID of the sender?",
        validate=_must_exist(validator, context.endpoint, implicit_ok=False),
    )
    runner.trail.record("--sender", sender)
    return sender


def resolve_receiver(
    runner: StageRunner, validator: AccountValidator, context: BuildContext, supplied: str | None
) -> str:
    # Implicit accounts are created by the first transfer into them.
    receiver = runner.resolve(
        "Receiver account ID",
        supplied,
        parse=parse_account_id,
        prompt="What is the account ID of the receiver?",
        validate=_must_exist(validator, context.endpoint, implicit_ok=True),
    )
    runner.trail.record("--receiver", receiver)
    return receiver


def resolve_amount(
    runner: StageRunner, validator: AccountValidator, context: BuildContext, supplied: str | None
) -> int:
    """Resolve the deposit in yoctoNEAR, capped by the sender's balance when online."""

    ceiling: int | None = None
    if context.endpoint is not None and context.sender_account_id is not None:
        result = validator.validate(context.endpoint, context.sender_account_id)
        if result.status is AccountStatus.EXISTS:
            ceiling = result.balance
        elif result.status is AccountStatus.NOT_FOUND:
            ceiling = 0

    def check(deposit: int) -> Verdict:
        if ceiling is not None and deposit > ceiling:
            limit = format_near_amount(ceiling)
            return Verdict.reject(f"You need to enter a value of no more than {limit}", hint=limit)
        return ACCEPT

    deposit = runner.resolve(
        "Amount",
        supplied,
        parse=parse_near_amount,
        prompt=f"How many NEAR Tokens do you want to transfer? ({AMOUNT_EXAMPLES})",
        validate=check,
    )
    runner.trail.record("--amount", format_near_amount(deposit))
    return deposit


def resolve_submit(runner: StageRunner, context: BuildContext, strategy: Any, supplied: str | None) -> str:
    options = submit_options(context.endpoint)
    if not strategy.produces_signature:
        # An unsigned transaction can only be displayed; --submit is ignored.
        if supplied is not None:
            logger.debug("Ignoring --submit %s for an unsigned transaction", supplied)
        return DISPLAY_TAG

    if supplied is None and len(options) == 1:
        option = options[0]
    else:
        option = runner.choose("Submit option", supplied, options, prompt="How would you like to proceed?")
    runner.trail.record("--submit", option.tag)
    return option.tag


class TransferPipeline:
    """Run the stages in order and hand the result to the signer and engine."""

    def __init__(
        self,
        runner: StageRunner,
        *,
        config: TransferConfig,
        rpc_factory: Callable[[EndpointDescriptor], Any] | None = None,
        credential_store: CredentialStore | None = None,
        device_factory: Callable[[], HardwareDevice] | None = None,
    ) -> None:
        self.runner = runner
        self.config = config
        self._rpc_factory = rpc_factory or self._default_rpc
        self._clients: Dict[EndpointDescriptor, Any] = {}
        self.validator = AccountValidator(self.rpc_for)
        self.services = SigningServices(
            rpc_for=self.rpc_for,
            credential_store=credential_store or CredentialStore(config.credentials_dir),
            device_factory=device_factory or LedgerDevice.connect,
            notify=runner.notify,
        )
        self.engine = SubmissionEngine(self.rpc_for, notify=runner.notify)

    def _default_rpc(self, endpoint: EndpointDescriptor) -> NearRPCClient:
        return NearRPCClient(endpoint.rpc_url, timeout=self.config.rpc_timeout)

    def rpc_for(self, endpoint: EndpointDescriptor) -> Any:
        client = self._clients.get(endpoint)
        if client is None:
            client = self._clients[endpoint] = self._rpc_factory(endpoint)
        return client

    def build(self, request: TransferRequest) -> TransferPlan:
        endpoint = resolve_endpoint(
            self.runner,
            offline=request.offline,
            network=request.network,
            rpc_url=request.rpc_url,
            config=self.config,
        )
        context = BuildContext(endpoint=endpoint)

        sender = resolve_sender(self.runner, self.validator, context, request.sender)
        context = context.with_sender(sender)
        skeleton = Transaction().with_signer(sender)

        receiver = resolve_receiver(self.runner, self.validator, context, request.receiver)
        skeleton = skeleton.with_receiver(receiver)

        deposit = resolve_amount(self.runner, self.validator, context, request.amount)
        skeleton = skeleton.with_action(TransferAction(deposit))

        strategy = select_signing_strategy(self.runner, request, context, self.config)
        submit = resolve_submit(self.runner, context, strategy, request.submit)
        return TransferPlan(context, skeleton, strategy, submit)

    def execute(self, plan: TransferPlan) -> SubmissionOutcome:
        result = plan.strategy.sign(plan.skeleton, plan.context, self.services)
        logger.info("Prepared transaction %s", result.transaction.hash)
        return self.engine.submit(result, plan.context.endpoint, plan.submit)

    def run(self, request: TransferRequest) -> SubmissionOutcome:
        return self.execute(self.build(request))
