"""Bind workflow data model and state machine."""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from web3 import Web3

from token_bind.config import BindConfig
from token_bind.exceptions import WorkflowError


class WorkflowStep(str, enum.Enum):
    """Transaction-submitting steps."""
    DEPLOY = "DEPLOY"
    APPROVE = "APPROVE"
    BIND = "BIND"
    REJECT = "REJECT"
    TRANSFER_OWNERSHIP = "TRANSFER_OWNERSHIP"
    REFUND = "REFUND"


class TransactionOutcome(str, enum.Enum):
    """Result of waiting for a submitted transaction."""
    CONFIRMED_SUCCESS = "CONFIRMED_SUCCESS"
    CONFIRMED_FAILURE = "CONFIRMED_FAILURE"
    TIMEOUT = "TIMEOUT"


class WorkflowState(str, enum.Enum):
    """
    Bind workflow state machine.

    Approve → Bind → (accepted) TransferOwnership → Done
                   → (rejected) Reject → Failed
    """
    DEPLOYED = "DEPLOYED"
    APPROVING = "APPROVING"
    APPROVED = "APPROVED"
    BINDING = "BINDING"
    BIND_CONFIRMED = "BIND_CONFIRMED"
    BIND_REJECTED = "BIND_REJECTED"
    REJECTING = "REJECTING"
    REJECT_CONFIRMED = "REJECT_CONFIRMED"
    FAILED = "FAILED"
    TRANSFERRING_OWNERSHIP = "TRANSFERRING_OWNERSHIP"
    DONE = "DONE"
    ABORTED = "ABORTED"  # Fatal error at any step


TERMINAL_STATES = {WorkflowState.FAILED, WorkflowState.DONE, WorkflowState.ABORTED}

VALID_TRANSITIONS = {
    WorkflowState.DEPLOYED: [WorkflowState.APPROVING],
    WorkflowState.APPROVING: [WorkflowState.APPROVED],
    WorkflowState.APPROVED: [WorkflowState.BINDING],
    WorkflowState.BINDING: [WorkflowState.BIND_CONFIRMED, WorkflowState.BIND_REJECTED],
    # Rejected bind must always be resolved with an explicit reject
    WorkflowState.BIND_REJECTED: [WorkflowState.REJECTING],
    WorkflowState.REJECTING: [WorkflowState.REJECT_CONFIRMED],
    WorkflowState.REJECT_CONFIRMED: [WorkflowState.FAILED],
    WorkflowState.BIND_CONFIRMED: [WorkflowState.TRANSFERRING_OWNERSHIP],
    WorkflowState.TRANSFERRING_OWNERSHIP: [WorkflowState.DONE],
    WorkflowState.FAILED: [],  # Terminal state
    WorkflowState.DONE: [],  # Terminal state
    WorkflowState.ABORTED: [],  # Terminal state
}


class BindRequest(BaseModel):
    """Immutable workflow input, built once at startup."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    legacy_symbol: str
    contract_payload: bytes
    custody_account: str
    chain_id: int

    @field_validator("custody_account")
    @classmethod
    def validate_custody_account(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError("Invalid custody address")
        return Web3.to_checksum_address(v)

    @classmethod
    def from_config(cls, config: BindConfig, chain_id: int) -> "BindRequest":
        return cls(
            symbol=config.symbol,
            legacy_symbol=config.bep2_symbol,
            contract_payload=config.contract_bytecode,
            custody_account=config.ledger_account,
            chain_id=chain_id,
        )


@dataclass(frozen=True)
class PendingTransaction:
    """Submitted but not yet confirmed transaction."""
    step: WorkflowStep
    tx_hash: str
    nonce: int
    sender: str


@dataclass(frozen=True)
class Receipt:
    """Subset of a transaction receipt the tool branches on."""
    tx_hash: str
    status: int
    block_number: Optional[int] = None
    contract_address: Optional[str] = None
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass
class SubmittedTransaction:
    """Ledger entry reported to the operator."""
    step: WorkflowStep
    tx_hash: str
    outcome: Optional[TransactionOutcome] = None


@dataclass
class WorkflowRun:
    """Single-run workflow state; never persisted."""
    contract_address: str
    state: WorkflowState = WorkflowState.DEPLOYED
    transactions: List[SubmittedTransaction] = field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    _pending: Dict[WorkflowStep, PendingTransaction] = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def submitted_steps(self) -> List[WorkflowStep]:
        return [tx.step for tx in self.transactions]

    def can_transition_to(self, new_state: WorkflowState) -> bool:
        """Check if transition to new state is valid."""
        if new_state == WorkflowState.ABORTED:
            return not self.is_terminal
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition(self, new_state: WorkflowState) -> WorkflowState:
        if not self.can_transition_to(new_state):
            raise WorkflowError(f"Invalid transition: {self.state.value} -> {new_state.value}")
        old_state = self.state
        self.state = new_state
        return old_state

    def record_submission(self, pending: PendingTransaction) -> None:
        if pending.step in self._pending:
            raise WorkflowError(
                f"Step {pending.step.value} already has unconfirmed transaction",
                self._pending[pending.step].tx_hash,
            )
        self._pending[pending.step] = pending
        self.transactions.append(SubmittedTransaction(pending.step, pending.tx_hash))

    def pending_for(self, step: WorkflowStep) -> Optional[PendingTransaction]:
        return self._pending.get(step)

    def record_outcome(self, pending: PendingTransaction, outcome: TransactionOutcome) -> None:
        # A timed-out transaction may still be mined, so it stays pending
        if outcome != TransactionOutcome.TIMEOUT:
            self._pending.pop(pending.step, None)
        for tx in reversed(self.transactions):
            if tx.tx_hash == pending.tx_hash:
                tx.outcome = outcome
                break
