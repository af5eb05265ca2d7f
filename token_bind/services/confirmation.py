"""Confirmation waiter: blocks until a submitted transaction is mined."""
import logging
from typing import Optional, Tuple

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_delay,
    wait_exponential,
)

from token_bind.config import Settings
from token_bind.exceptions import ConfirmationTimeout
from token_bind.models import PendingTransaction, Receipt, TransactionOutcome
from token_bind.services.gateway import ChainGateway

logger = logging.getLogger(__name__)


def _is_pending(receipt: Optional[Receipt]) -> bool:
    return receipt is None


class ConfirmationWaiter:
    """Polls the gateway for a receipt with exponential backoff until a deadline."""

    def __init__(
        self,
        gateway: ChainGateway,
        timeout_seconds: float = 120.0,
        poll_min_seconds: float = 1.0,
        poll_max_seconds: float = 10.0,
    ):
        self.gateway = gateway
        self.timeout_seconds = timeout_seconds
        self.poll_min_seconds = poll_min_seconds
        self.poll_max_seconds = poll_max_seconds

    @classmethod
    def from_settings(cls, gateway: ChainGateway, settings: Settings) -> "ConfirmationWaiter":
        return cls(
            gateway,
            timeout_seconds=settings.confirmation_timeout_seconds,
            poll_min_seconds=settings.confirmation_poll_min_seconds,
            poll_max_seconds=settings.confirmation_poll_max_seconds,
        )

    async def wait(self, pending: PendingTransaction) -> Tuple[TransactionOutcome, Receipt]:
        """
        Wait for ``pending`` to be mined.

        Returns the outcome derived from the receipt status together with the
        receipt itself.

        Raises:
            ConfirmationTimeout: If no receipt appears within the deadline.
        """
        retrying = AsyncRetrying(
            retry=retry_if_result(_is_pending),
            stop=stop_after_delay(self.timeout_seconds),
            wait=wait_exponential(
                multiplier=self.poll_min_seconds,
                min=self.poll_min_seconds,
                max=self.poll_max_seconds,
            ),
        )

        try:
            receipt = await retrying(self.gateway.get_receipt, pending.tx_hash)
        except RetryError:
            logger.error(
                f"{pending.step.value} tx {pending.tx_hash} not mined within {self.timeout_seconds}s"
            )
            raise ConfirmationTimeout(
                f"{pending.step.value} transaction not confirmed within {self.timeout_seconds}s",
                tx_hash=pending.tx_hash,
            )

        outcome = (
            TransactionOutcome.CONFIRMED_SUCCESS
            if receipt.succeeded
            else TransactionOutcome.CONFIRMED_FAILURE
        )
        logger.info(
            f"{pending.step.value} tx {pending.tx_hash} mined in block {receipt.block_number}, "
            f"status {receipt.status}"
        )
        return outcome, receipt
