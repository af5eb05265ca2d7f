"""Contract deployment from the operating account."""
import logging

from token_bind.exceptions import OnChainFailure, SubmissionError
from token_bind.models import BindRequest, TransactionOutcome, WorkflowStep
from token_bind.services.confirmation import ConfirmationWaiter
from token_bind.services.gateway import ChainGateway
from token_bind.services.signing import Signer

logger = logging.getLogger(__name__)


async def deploy_contract(
    gateway: ChainGateway,
    signer: Signer,
    waiter: ConfirmationWaiter,
    request: BindRequest,
) -> str:
    """Deploy the BEP20 contract payload and return the new contract address."""
    if not request.contract_payload:
        raise SubmissionError("contract deployment payload is empty")

    logger.info(f"Deploy BEP20 contract {request.symbol} from account {signer.address}")
    pending = await gateway.send_transaction(
        signer,
        WorkflowStep.DEPLOY,
        to=None,
        data=request.contract_payload,
    )

    outcome, receipt = await waiter.wait(pending)
    if outcome != TransactionOutcome.CONFIRMED_SUCCESS:
        raise OnChainFailure("contract deployment reverted", tx_hash=pending.tx_hash)
    if not receipt.contract_address:
        raise OnChainFailure("deployment receipt has no contract address", tx_hash=pending.tx_hash)

    logger.info(f"BEP20 contract address: {receipt.contract_address}")
    return receipt.contract_address
