"""Pytest configuration and fixtures."""
import json
from typing import Dict, List, Optional, Tuple

import pytest
from web3 import Web3

from token_bind.config import Settings
from token_bind.exceptions import SubmissionError
from token_bind.models import BindRequest, PendingTransaction, Receipt, WorkflowStep
from token_bind.services.confirmation import ConfirmationWaiter


CONTRACT_ADDRESS = Web3.to_checksum_address("0x" + "a" * 40)
CUSTODY_ACCOUNT = Web3.to_checksum_address("0x" + "c" * 40)
OPERATING_ACCOUNT = Web3.to_checksum_address("0x" + "1" * 40)


class FakeSigner:
    """Signer stand-in; the fake gateway never asks it to sign."""

    def __init__(self, address: str = OPERATING_ACCOUNT):
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    async def sign_transaction(self, tx_dict: dict) -> Tuple[bytes, str]:
        raw = json.dumps(tx_dict, sort_keys=True).encode()
        return raw, Web3.to_hex(Web3.keccak(raw))


class FakeGateway:
    """
    In-memory chain gateway recording every submitted transaction.

    ``statuses`` maps a step to its receipt status (default 1). ``pending_polls``
    maps a step to the number of receipt lookups that return None first; use
    a negative number to never mine the transaction.
    """

    def __init__(
        self,
        total_supply: int = 1000,
        statuses: Optional[Dict[WorkflowStep, int]] = None,
        pending_polls: Optional[Dict[WorkflowStep, int]] = None,
        fail_submission: Optional[WorkflowStep] = None,
        balance: int = 0,
        gas_price: int = 10**9,
    ):
        self.total_supply = total_supply
        self.statuses = statuses or {}
        self.pending_polls = dict(pending_polls or {})
        self.fail_submission = fail_submission
        self.balance = balance
        self.gas_price = gas_price
        self.sent: List[dict] = []
        self.receipt_lookups: Dict[str, int] = {}
        self._steps_by_hash: Dict[str, WorkflowStep] = {}

    @property
    def sent_steps(self) -> List[WorkflowStep]:
        return [tx["step"] for tx in self.sent]

    def sent_for(self, step: WorkflowStep) -> dict:
        return next(tx for tx in self.sent if tx["step"] == step)

    async def read_total_supply(self, contract_address: str) -> int:
        return self.total_supply

    async def get_balance(self, address: str) -> int:
        return self.balance

    async def get_gas_price(self) -> int:
        return self.gas_price

    async def send_transaction(
        self,
        signer,
        step: WorkflowStep,
        to: Optional[str],
        data: bytes = b"",
        value: int = 0,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
    ) -> PendingTransaction:
        if step == self.fail_submission:
            raise SubmissionError(f"node rejected {step.value}", "insufficient funds for gas")

        nonce = len(self.sent)
        tx_hash = "0x" + f"{nonce + 1:064x}"
        self.sent.append({
            "step": step,
            "to": to,
            "data": data,
            "value": value,
            "gas_limit": gas_limit,
            "gas_price": gas_price,
            "tx_hash": tx_hash,
        })
        self._steps_by_hash[tx_hash] = step
        return PendingTransaction(step=step, tx_hash=tx_hash, nonce=nonce, sender=signer.address)

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        self.receipt_lookups[tx_hash] = self.receipt_lookups.get(tx_hash, 0) + 1
        step = self._steps_by_hash[tx_hash]

        remaining = self.pending_polls.get(step, 0)
        if remaining < 0:
            return None
        if remaining > 0:
            self.pending_polls[step] = remaining - 1
            return None

        return Receipt(
            tx_hash=tx_hash,
            status=self.statuses.get(step, 1),
            block_number=100 + len(self.receipt_lookups),
            contract_address=CONTRACT_ADDRESS if step == WorkflowStep.DEPLOY else None,
            gas_used=50_000,
        )


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        network_type="testnet",
        keystore_password="test-password",
        confirmation_timeout_seconds=2.0,
        confirmation_poll_min_seconds=0.01,
        confirmation_poll_max_seconds=0.02,
        rpc_retry_attempts=1,  # Disable retries for faster tests
        refund_dust_threshold_wei=10**14,
    )


@pytest.fixture
def bind_request() -> BindRequest:
    return BindRequest(
        symbol="ABC",
        legacy_symbol="ABC-123",
        contract_payload=bytes.fromhex("6080604052"),
        custody_account=CUSTODY_ACCOUNT,
        chain_id=97,
    )


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


def make_waiter(gateway, timeout_seconds: float = 2.0) -> ConfirmationWaiter:
    return ConfirmationWaiter(
        gateway,
        timeout_seconds=timeout_seconds,
        poll_min_seconds=0.01,
        poll_max_seconds=0.02,
    )


@pytest.fixture
def bind_config_file(tmp_path):
    """Write a valid bind config file and return its path."""
    path = tmp_path / "bind.json"
    path.write_text(json.dumps({
        "contract_data": "0x6080604052",
        "symbol": "ABC",
        "bep2_symbol": "ABC-123",
        "ledger_account": CUSTODY_ACCOUNT.lower(),
    }))
    return str(path)
