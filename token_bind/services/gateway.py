"""Chain gateway: RPC access, nonce management and transaction submission."""
import asyncio
import logging
from typing import Dict, Optional

import requests
from eth_abi.exceptions import DecodingError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from web3 import Web3
from web3.exceptions import TransactionNotFound

from token_bind import contracts
from token_bind.config import Settings
from token_bind.exceptions import SignerError, SubmissionError, WorkflowPreconditionError
from token_bind.models import PendingTransaction, Receipt, WorkflowStep
from token_bind.services.signing import Signer

logger = logging.getLogger(__name__)

TRANSIENT_RPC_ERRORS = (
    ConnectionError,
    TimeoutError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)

TRANSFER_GAS_LIMIT = 21000


class NonceManager:
    """Simple nonce manager to prevent nonce conflicts."""

    def __init__(self):
        self._nonces: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def get_nonce(self, address: str, web3: Web3) -> int:
        """Get next nonce for address, handling pending transactions."""
        async with self._lock:
            address_lower = address.lower()

            chain_nonce = web3.eth.get_transaction_count(Web3.to_checksum_address(address), "pending")

            # Node may not have seen our last broadcast yet
            cached = self._nonces.get(address_lower, 0)
            nonce = max(chain_nonce, cached)

            self._nonces[address_lower] = nonce + 1
            return nonce

    async def reset_nonce(self, address: str):
        """Reset cached nonce for address (e.g., after failed tx)."""
        async with self._lock:
            self._nonces.pop(address.lower(), None)


class ChainGateway:
    """Service for BNB Smart Chain RPC interactions."""

    def __init__(self, settings: Settings, web3: Optional[Web3] = None):
        self.settings = settings
        self.network = settings.network
        self._web3 = web3
        self.nonce_manager = NonceManager()

    @property
    def web3(self) -> Web3:
        """Get Web3 instance (lazy loaded)."""
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(self.network.rpc_url))
        return self._web3

    @property
    def chain_id(self) -> int:
        return self.network.chain_id

    async def get_gas_price(self) -> int:
        return self.web3.eth.gas_price

    async def estimate_gas(
        self,
        from_address: str,
        to_address: Optional[str],
        value: int,
        data: bytes,
        default: int,
    ) -> int:
        """Estimate gas for transaction."""
        tx = {
            "from": Web3.to_checksum_address(from_address),
            "value": value,
            "data": Web3.to_hex(data),
        }
        if to_address is not None:
            tx["to"] = Web3.to_checksum_address(to_address)

        try:
            estimate = self.web3.eth.estimate_gas(tx)
            # Add 20% buffer
            return int(estimate * 1.2)
        except Exception as e:
            logger.warning(f"Gas estimation failed: {e}, using default {default}")
            return default

    async def get_nonce(self, address: str) -> int:
        return await self.nonce_manager.get_nonce(address, self.web3)

    async def get_balance(self, address: str) -> int:
        """Native currency balance in wei."""
        return self.web3.eth.get_balance(Web3.to_checksum_address(address))

    async def read_total_supply(self, contract_address: str) -> int:
        """Live totalSupply() of a BEP20 contract."""
        result = self.web3.eth.call({
            "to": Web3.to_checksum_address(contract_address),
            "data": Web3.to_hex(contracts.total_supply_call()),
        })
        # Empty return data means no code at the address yet
        if not result:
            raise WorkflowPreconditionError(
                f"contract {contract_address} has no code; deployment not settled?"
            )
        try:
            return contracts.decode_uint256(result)
        except DecodingError as e:
            raise WorkflowPreconditionError(f"totalSupply() of {contract_address} is unreadable", str(e))

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """Get transaction receipt if available."""
        try:
            receipt = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except TRANSIENT_RPC_ERRORS as e:
            logger.warning(f"Failed to get receipt for {tx_hash}: {e}")
            return None
        if not receipt:
            return None

        contract_address = receipt.get("contractAddress")
        return Receipt(
            tx_hash=tx_hash,
            status=int(receipt.get("status", 0)),
            block_number=receipt.get("blockNumber"),
            contract_address=Web3.to_checksum_address(contract_address) if contract_address else None,
            gas_used=receipt.get("gasUsed"),
        )

    def _create_retry(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_RPC_ERRORS),
            stop=stop_after_attempt(self.settings.rpc_retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    async def broadcast_transaction(self, raw_tx: bytes, tx_hash: str) -> str:
        """
        Broadcast signed transaction to the network.
        Returns tx_hash on success.
        """
        async def _send() -> str:
            return Web3.to_hex(self.web3.eth.send_raw_transaction(raw_tx))

        try:
            return await self._create_retry()(_send)
        except TRANSIENT_RPC_ERRORS as e:
            logger.error(f"Broadcast failed for {tx_hash}: {e}")
            raise SubmissionError(f"could not reach node to broadcast {tx_hash}", str(e))
        except Exception as e:
            # An earlier attempt may have landed before the connection dropped
            if "already known" in str(e).lower():
                logger.warning(f"Transaction {tx_hash} already known to node")
                return tx_hash
            logger.error(f"Broadcast failed for {tx_hash}: {e}")
            raise SubmissionError(f"node rejected transaction {tx_hash}", str(e))

    async def send_transaction(
        self,
        signer: Signer,
        step: WorkflowStep,
        to: Optional[str],
        data: bytes = b"",
        value: int = 0,
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
    ) -> PendingTransaction:
        """Build, sign and broadcast one transaction from the operating account."""
        sender = signer.address
        nonce = await self.get_nonce(sender)
        if gas_price is None:
            gas_price = await self.get_gas_price()
        if gas_limit is None:
            default = self.settings.deploy_gas_limit if to is None else self.settings.default_gas_limit
            gas_limit = await self.estimate_gas(sender, to, value, data, default)

        tx_dict = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": gas_limit,
            "value": value,
            "data": Web3.to_hex(data),
            "chainId": self.chain_id,
        }
        if to is not None:
            tx_dict["to"] = Web3.to_checksum_address(to)

        try:
            raw_tx, tx_hash = await signer.sign_transaction(tx_dict)
            tx_hash = await self.broadcast_transaction(raw_tx, tx_hash)
        except (SignerError, SubmissionError):
            await self.nonce_manager.reset_nonce(sender)
            raise

        logger.info(f"{step.value} submitted: {tx_hash} (nonce {nonce}, gas {gas_limit}, value {value})")
        return PendingTransaction(step=step, tx_hash=tx_hash, nonce=nonce, sender=sender)
