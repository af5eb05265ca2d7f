"""Workflow services."""
from token_bind.services.confirmation import ConfirmationWaiter
from token_bind.services.deployment import deploy_contract
from token_bind.services.gateway import ChainGateway, NonceManager
from token_bind.services.orchestrator import BindOrchestrator
from token_bind.services.refund import RefundStep
from token_bind.services.signing import (
    HardwareWalletDevice,
    HardwareWalletSigner,
    KeystoreSigner,
    Signer,
    build_signer,
    load_or_create_keystore_account,
)

__all__ = [
    "BindOrchestrator",
    "ChainGateway",
    "ConfirmationWaiter",
    "HardwareWalletDevice",
    "HardwareWalletSigner",
    "KeystoreSigner",
    "NonceManager",
    "RefundStep",
    "Signer",
    "build_signer",
    "deploy_contract",
    "load_or_create_keystore_account",
]
