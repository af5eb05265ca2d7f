"""Bind workflow orchestrator - state machine for binding a BEP2 token to a BEP20 contract.

Flow: Approve → Bind → (accepted) TransferOwnership → DONE
                     → (rejected) Reject → FAILED

Every transaction is confirmed before the next one is submitted. Any fatal
error moves the run to ABORTED and is re-raised to the caller.
"""
import logging
from typing import Optional, Tuple

from web3 import Web3

from token_bind import contracts
from token_bind.exceptions import (
    ConfirmationTimeout,
    OnChainFailure,
    WorkflowError,
    WorkflowPreconditionError,
)
from token_bind.models import (
    BindRequest,
    PendingTransaction,
    Receipt,
    TransactionOutcome,
    WorkflowRun,
    WorkflowState,
    WorkflowStep,
)
from token_bind.services.confirmation import ConfirmationWaiter
from token_bind.services.gateway import ChainGateway
from token_bind.services.signing import Signer

logger = logging.getLogger(__name__)


class BindOrchestrator:
    """
    Orchestrates the bind lifecycle for one deployed contract:
    DEPLOYED -> APPROVING -> APPROVED -> BINDING -> BIND_CONFIRMED | BIND_REJECTED
      BIND_CONFIRMED -> TRANSFERRING_OWNERSHIP -> DONE
      BIND_REJECTED -> REJECTING -> REJECT_CONFIRMED -> FAILED

    A reverted approval is fatal: the bind would fail on-chain anyway and the
    run stops before paying the relay fee.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        signer: Signer,
        waiter: ConfirmationWaiter,
        bind_fee_wei: int = contracts.BIND_RELAY_FEE_WEI,
        token_manager: str = contracts.TOKEN_MANAGER_ADDRESS,
    ):
        self.gateway = gateway
        self.signer = signer
        self.waiter = waiter
        self.bind_fee_wei = bind_fee_wei
        self.token_manager = Web3.to_checksum_address(token_manager)
        self.run: Optional[WorkflowRun] = None

    async def execute(self, request: BindRequest, contract_address: str) -> WorkflowRun:
        """Run the workflow to a terminal state and return the run record."""
        run = WorkflowRun(contract_address=Web3.to_checksum_address(contract_address))
        self.run = run
        logger.info(
            f"Binding {request.legacy_symbol} to {run.contract_address} "
            f"from {self.signer.address} on chain {request.chain_id}"
        )

        try:
            await self._process_approve(run, request)
            if await self._process_bind(run, request):
                await self._process_transfer_ownership(run, request)
            else:
                await self._process_reject(run, request)
        except Exception as e:
            self._abort(run, e)
            raise

        return run

    def _transition_status(self, run: WorkflowRun, new_state: WorkflowState) -> None:
        old_state = run.transition(new_state)
        logger.info(f"Workflow {run.contract_address}: {old_state.value} -> {new_state.value}")

    def _abort(self, run: WorkflowRun, error: Exception) -> None:
        if run.is_terminal:
            return
        run.error = str(error)
        old_state = run.state
        run.transition(WorkflowState.ABORTED)
        logger.error(f"Workflow {run.contract_address} aborted in {old_state.value}: {error}")

    async def _submit(
        self,
        run: WorkflowRun,
        step: WorkflowStep,
        to: str,
        data: bytes,
        value: int = 0,
    ) -> PendingTransaction:
        """Submit one transaction for ``step``; never while a prior one is unconfirmed."""
        existing = run.pending_for(step)
        if existing is not None:
            raise WorkflowError(f"{step.value} already pending", existing.tx_hash)

        pending = await self.gateway.send_transaction(self.signer, step, to=to, data=data, value=value)
        run.record_submission(pending)
        return pending

    async def _confirm(
        self,
        run: WorkflowRun,
        pending: PendingTransaction,
    ) -> Tuple[TransactionOutcome, Receipt]:
        try:
            outcome, receipt = await self.waiter.wait(pending)
        except ConfirmationTimeout:
            run.record_outcome(pending, TransactionOutcome.TIMEOUT)
            raise
        run.record_outcome(pending, outcome)
        return outcome, receipt

    async def _process_approve(self, run: WorkflowRun, request: BindRequest) -> int:
        """Approve the token manager for the full live total supply."""
        self._transition_status(run, WorkflowState.APPROVING)

        total_supply = await self.gateway.read_total_supply(run.contract_address)
        logger.info(f"Total Supply {total_supply}")
        if total_supply <= 0:
            raise WorkflowPreconditionError(
                f"contract {run.contract_address} reports zero total supply; deployment not settled?"
            )

        logger.info(f"Approve {total_supply}:{request.symbol} to TokenManager from {self.signer.address}")
        pending = await self._submit(
            run,
            WorkflowStep.APPROVE,
            to=run.contract_address,
            data=contracts.approve_call(self.token_manager, total_supply),
        )

        outcome, _ = await self._confirm(run, pending)
        if outcome != TransactionOutcome.CONFIRMED_SUCCESS:
            raise OnChainFailure("approve transaction reverted", tx_hash=pending.tx_hash)

        self._transition_status(run, WorkflowState.APPROVED)
        return total_supply

    async def _process_bind(self, run: WorkflowRun, request: BindRequest) -> bool:
        """Submit approveBind; returns True when the token manager accepted it."""
        self._transition_status(run, WorkflowState.BINDING)

        pending = await self._submit(
            run,
            WorkflowStep.BIND,
            to=self.token_manager,
            data=contracts.approve_bind_call(run.contract_address, request.legacy_symbol),
            value=self.bind_fee_wei,
        )

        outcome, _ = await self._confirm(run, pending)
        if outcome == TransactionOutcome.CONFIRMED_SUCCESS:
            self._transition_status(run, WorkflowState.BIND_CONFIRMED)
            return True

        logger.warning(f"Approve bind failed for {request.legacy_symbol} (tx {pending.tx_hash})")
        self._transition_status(run, WorkflowState.BIND_REJECTED)
        return False

    async def _process_reject(self, run: WorkflowRun, request: BindRequest) -> None:
        """Resolve a failed bind with rejectBind for the same (contract, symbol) pair."""
        self._transition_status(run, WorkflowState.REJECTING)

        pending = await self._submit(
            run,
            WorkflowStep.REJECT,
            to=self.token_manager,
            data=contracts.reject_bind_call(run.contract_address, request.legacy_symbol),
            value=self.bind_fee_wei,
        )

        outcome, receipt = await self._confirm(run, pending)
        logger.info(f"reject bind tx {pending.tx_hash} receipt status {receipt.status}")
        if outcome != TransactionOutcome.CONFIRMED_SUCCESS:
            logger.error(f"Reject bind reverted for {request.legacy_symbol}; not retried")

        self._transition_status(run, WorkflowState.REJECT_CONFIRMED)
        self._transition_status(run, WorkflowState.FAILED)

    async def _process_transfer_ownership(self, run: WorkflowRun, request: BindRequest) -> None:
        """Hand contract ownership to the custody account and confirm it."""
        self._transition_status(run, WorkflowState.TRANSFERRING_OWNERSHIP)

        logger.info(f"Transfer ownership of {request.symbol} to {request.custody_account}")
        pending = await self._submit(
            run,
            WorkflowStep.TRANSFER_OWNERSHIP,
            to=run.contract_address,
            data=contracts.transfer_ownership_call(request.custody_account),
        )

        outcome, _ = await self._confirm(run, pending)
        if outcome != TransactionOutcome.CONFIRMED_SUCCESS:
            raise OnChainFailure("transferOwnership transaction reverted", tx_hash=pending.tx_hash)

        self._transition_status(run, WorkflowState.DONE)
