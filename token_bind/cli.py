"""Command line entry point for the token bind tool.

Usage:
    token-bind-tool --network-type testnet --operation init-key
    token-bind-tool --operation deploy-contract --config-path bind.json
    token-bind-tool --operation approve-bind-and-transfer-ownership \\
        --config-path bind.json --bep20-contract-addr 0x...
    token-bind-tool --operation refund-rest-balance --ledger-account 0x...
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Tuple

from pydantic import ValidationError
from web3 import Web3

from token_bind.config import MAINNET, TESTNET, Settings, get_settings, load_bind_config
from token_bind.exceptions import (
    BindToolError,
    ConfigurationError,
    ConfirmationTimeout,
    OnChainFailure,
    SignerError,
    SubmissionError,
    WorkflowError,
    WorkflowPreconditionError,
)
from token_bind.models import BindRequest, WorkflowRun, WorkflowState
from token_bind.services.confirmation import ConfirmationWaiter
from token_bind.services.deployment import deploy_contract
from token_bind.services.gateway import ChainGateway
from token_bind.services.orchestrator import BindOrchestrator
from token_bind.services.refund import RefundStep
from token_bind.services.signing import HardwareWalletDevice, Signer, build_signer

logger = logging.getLogger(__name__)

INIT_KEY = "init-key"
DEPLOY_CONTRACT = "deploy-contract"
APPROVE_BIND = "approve-bind-and-transfer-ownership"
REFUND_REST_BALANCE = "refund-rest-balance"

# Legacy camelCase operation names stay accepted
OPERATIONS = {
    INIT_KEY: INIT_KEY,
    "initKey": INIT_KEY,
    DEPLOY_CONTRACT: DEPLOY_CONTRACT,
    "deployContract": DEPLOY_CONTRACT,
    APPROVE_BIND: APPROVE_BIND,
    "approveBindAndTransferOwnership": APPROVE_BIND,
    REFUND_REST_BALANCE: REFUND_REST_BALANCE,
    "refundRestBNB": REFUND_REST_BALANCE,
}

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_SUBMISSION = 3
EXIT_CONFIRMATION_TIMEOUT = 4
EXIT_ON_CHAIN_FAILURE = 5
EXIT_BIND_REJECTED = 6
EXIT_SIGNER = 7
EXIT_WORKFLOW = 8


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="token-bind-tool",
        description="Bind a BEP2 token to a freshly deployed BEP20 contract",
    )
    parser.add_argument("--network-type", choices=[MAINNET, TESTNET], default=None,
                        help="mainnet or testnet (default from TOKEN_BIND_NETWORK_TYPE)")
    parser.add_argument("--operation", required=True, choices=sorted(OPERATIONS),
                        metavar="{" + ",".join([INIT_KEY, DEPLOY_CONTRACT, APPROVE_BIND, REFUND_REST_BALANCE]) + "}",
                        help="operation to perform")
    parser.add_argument("--config-path", default="", help="bind config file path")
    parser.add_argument("--bep20-contract-addr", default="", help="deployed bep20 contract address")
    parser.add_argument("--ledger-account", default="", help="custody (ledger) account address")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser


def exit_code_for(error: BaseException) -> int:
    """Map an error to a distinguishing process exit code."""
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIGURATION
    if isinstance(error, SubmissionError):
        return EXIT_SUBMISSION
    if isinstance(error, ConfirmationTimeout):
        return EXIT_CONFIRMATION_TIMEOUT
    if isinstance(error, (OnChainFailure, WorkflowPreconditionError)):
        return EXIT_ON_CHAIN_FAILURE
    if isinstance(error, SignerError):
        return EXIT_SIGNER
    # Invalid transition or a second submission for a pending step
    if isinstance(error, WorkflowError):
        return EXIT_WORKFLOW
    return EXIT_UNEXPECTED


def resolve_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command line overrides applied."""
    try:
        settings = get_settings()
    except ValidationError as e:
        raise ConfigurationError("invalid environment settings", str(e))

    overrides = {}
    if args.network_type:
        overrides["network_type"] = args.network_type
    return settings.model_copy(update=overrides) if overrides else settings


def build_services(
    settings: Settings,
    device: Optional[HardwareWalletDevice] = None,
) -> Tuple[ChainGateway, Signer, ConfirmationWaiter]:
    gateway = ChainGateway(settings)
    signer = build_signer(settings, device)
    waiter = ConfirmationWaiter.from_settings(gateway, settings)
    return gateway, signer, waiter


def _checksum(address: str, what: str) -> str:
    address = (address or "").strip()
    if not address:
        raise ConfigurationError(f"{what} address is empty")
    if not Web3.is_address(address):
        raise ConfigurationError(f"{what} address is invalid", address)
    return Web3.to_checksum_address(address)


def print_run_summary(run: WorkflowRun) -> None:
    print(f"Workflow for {run.contract_address}: {run.state.value}")
    for tx in run.transactions:
        outcome = tx.outcome.value if tx.outcome else "UNCONFIRMED"
        print(f"  {tx.step.value:<20} {tx.tx_hash} {outcome}")
    if run.error:
        print(f"  error: {run.error}")


async def run_operation(
    args: argparse.Namespace,
    settings: Settings,
    device: Optional[HardwareWalletDevice] = None,
) -> int:
    operation = OPERATIONS[args.operation]

    if operation == INIT_KEY:
        signer = build_signer(settings, device)
        if args.ledger_account:
            print(f"Ledger account {_checksum(args.ledger_account, 'ledger')}, Temp account: {signer.address}")
        else:
            print(f"Temp account: {signer.address}")
        return EXIT_OK

    if operation == REFUND_REST_BALANCE:
        custody = args.ledger_account
        if not custody and args.config_path:
            custody = load_bind_config(args.config_path).ledger_account
        custody = _checksum(custody, "ledger account")

        gateway, signer, waiter = build_services(settings, device)
        refund = RefundStep(gateway, signer, waiter, settings.refund_dust_threshold_wei)
        result = await refund.execute(custody)
        if result is None:
            print(f"Nothing to refund from {signer.address}")
            return EXIT_OK
        outcome, receipt = result
        print(f"Refund tx {receipt.tx_hash}: {outcome.value}")
        return EXIT_OK if receipt.succeeded else EXIT_ON_CHAIN_FAILURE

    config = load_bind_config(args.config_path)
    request = BindRequest.from_config(config, settings.network.chain_id)

    if operation == DEPLOY_CONTRACT:
        gateway, signer, waiter = build_services(settings, device)
        contract_address = await deploy_contract(gateway, signer, waiter, request)
        print(f"For BEP2 token {request.legacy_symbol}, the deployed BEP20 contract address is {contract_address}")
        return EXIT_OK

    contract_address = _checksum(args.bep20_contract_addr, "bep20 contract")
    gateway, signer, waiter = build_services(settings, device)
    orchestrator = BindOrchestrator(gateway, signer, waiter, bind_fee_wei=settings.bind_fee_wei)
    try:
        run = await orchestrator.execute(request, contract_address)
    finally:
        if orchestrator.run is not None:
            print_run_summary(orchestrator.run)

    if run.state == WorkflowState.FAILED:
        return EXIT_BIND_REJECTED
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        settings = resolve_settings(args)
        logger.info(f"Using {settings.network.name} ({settings.network.rpc_url}, chain {settings.network.chain_id})")
        return asyncio.run(run_operation(args, settings))
    except BindToolError as e:
        logger.error(str(e))
        return exit_code_for(e)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    sys.exit(main())
