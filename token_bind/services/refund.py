"""Refund step: sweep the operating account's leftover balance to custody."""
import logging
from typing import Optional, Tuple

from web3 import Web3

from token_bind.models import Receipt, TransactionOutcome, WorkflowStep
from token_bind.services.confirmation import ConfirmationWaiter
from token_bind.services.gateway import TRANSFER_GAS_LIMIT, ChainGateway
from token_bind.services.signing import Signer

logger = logging.getLogger(__name__)


class RefundStep:
    """Transfers balance minus gas cost to the custody account in one transaction."""

    def __init__(
        self,
        gateway: ChainGateway,
        signer: Signer,
        waiter: ConfirmationWaiter,
        dust_threshold_wei: int = 0,
    ):
        self.gateway = gateway
        self.signer = signer
        self.waiter = waiter
        self.dust_threshold_wei = dust_threshold_wei

    async def execute(self, custody_account: str) -> Optional[Tuple[TransactionOutcome, Receipt]]:
        """
        Refund the operating balance to ``custody_account``.

        Returns None without submitting anything when the balance is dust or
        would not cover the transfer gas.
        """
        custody_account = Web3.to_checksum_address(custody_account)
        balance = await self.gateway.get_balance(self.signer.address)
        gas_price = await self.gateway.get_gas_price()
        gas_cost = gas_price * TRANSFER_GAS_LIMIT

        if balance < self.dust_threshold_wei or balance <= gas_cost:
            logger.info(
                f"Skip refund from {self.signer.address}: balance {balance} wei, "
                f"gas cost {gas_cost} wei, dust threshold {self.dust_threshold_wei} wei"
            )
            return None

        amount = balance - gas_cost
        logger.info(f"Refund {amount} wei from {self.signer.address} to {custody_account}")
        pending = await self.gateway.send_transaction(
            self.signer,
            WorkflowStep.REFUND,
            to=custody_account,
            value=amount,
            gas_limit=TRANSFER_GAS_LIMIT,
            gas_price=gas_price,
        )
        return await self.waiter.wait(pending)
