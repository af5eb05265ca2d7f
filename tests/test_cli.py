"""Tests for the command line surface."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import CONTRACT_ADDRESS, CUSTODY_ACCOUNT, FakeGateway, FakeSigner, make_waiter
from token_bind import cli
from token_bind.exceptions import (
    ConfigurationError,
    ConfirmationTimeout,
    OnChainFailure,
    SignerError,
    SubmissionError,
    WorkflowError,
    WorkflowPreconditionError,
)
from token_bind.models import WorkflowStep
from token_bind.services.gateway import ChainGateway


def parse(*argv):
    return cli.build_parser().parse_args(list(argv))


def patched_services(gateway):
    return patch.object(
        cli,
        "build_services",
        return_value=(gateway, FakeSigner(), make_waiter(gateway)),
    )


class TestParser:
    """Test operation selection."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("initKey", cli.INIT_KEY),
            ("deployContract", cli.DEPLOY_CONTRACT),
            ("approveBindAndTransferOwnership", cli.APPROVE_BIND),
            ("refundRestBNB", cli.REFUND_REST_BALANCE),
            ("approve-bind-and-transfer-ownership", cli.APPROVE_BIND),
        ],
    )
    def test_operation_aliases(self, name, expected) -> None:
        """Test legacy camelCase names map to the same operations."""
        args = parse("--operation", name)

        assert cli.OPERATIONS[args.operation] == expected

    def test_unknown_operation(self) -> None:
        with pytest.raises(SystemExit):
            parse("--operation", "mintTokens")

    def test_unknown_network(self) -> None:
        with pytest.raises(SystemExit):
            parse("--operation", "init-key", "--network-type", "devnet")

    def test_overrides_applied(self, settings) -> None:
        args = parse("--operation", "init-key", "--network-type", "mainnet")

        with patch.object(cli, "get_settings", return_value=settings):
            resolved = cli.resolve_settings(args)

        assert resolved.network.chain_id == 56
        assert settings.network.chain_id == 97

    def test_no_signer_selector(self) -> None:
        """Test the hardware wallet cannot be selected without an injected device."""
        with pytest.raises(SystemExit):
            parse("--operation", "init-key", "--signer", "ledger")


class TestExitCodes:
    """Test each error class has a distinguishing exit code."""

    @pytest.mark.parametrize(
        "error,code",
        [
            (ConfigurationError("bad"), cli.EXIT_CONFIGURATION),
            (SubmissionError("bad"), cli.EXIT_SUBMISSION),
            (ConfirmationTimeout("slow", tx_hash="0x1"), cli.EXIT_CONFIRMATION_TIMEOUT),
            (OnChainFailure("reverted"), cli.EXIT_ON_CHAIN_FAILURE),
            (WorkflowPreconditionError("zero"), cli.EXIT_ON_CHAIN_FAILURE),
            (SignerError("refused"), cli.EXIT_SIGNER),
            (WorkflowError("Invalid transition"), cli.EXIT_WORKFLOW),
            (RuntimeError("boom"), cli.EXIT_UNEXPECTED),
        ],
    )
    def test_exit_code_for(self, error, code) -> None:
        assert cli.exit_code_for(error) == code

    def test_main_maps_errors(self, settings) -> None:
        """Test main turns a tool error into its exit code."""
        with patch.object(cli, "get_settings", return_value=settings), patch.object(
            cli, "run_operation", new=AsyncMock(side_effect=SubmissionError("rejected"))
        ):
            code = cli.main(["--operation", "deploy-contract", "--config-path", "x.json"])

        assert code == cli.EXIT_SUBMISSION

    def test_main_contract_without_code(self, settings, bind_config_file) -> None:
        """Test an undeployed contract exits with the precondition code."""
        web3 = MagicMock()
        web3.eth.call.return_value = b""
        gateway = ChainGateway(settings, web3=web3)

        with patch.object(cli, "get_settings", return_value=settings), patched_services(gateway):
            code = cli.main([
                "--operation", cli.APPROVE_BIND,
                "--config-path", bind_config_file,
                "--bep20-contract-addr", CONTRACT_ADDRESS,
            ])

        assert code == cli.EXIT_ON_CHAIN_FAILURE
        web3.eth.send_raw_transaction.assert_not_called()

    def test_main_missing_config(self, settings, tmp_path) -> None:
        with patch.object(cli, "get_settings", return_value=settings):
            code = cli.main(["--operation", "deploy-contract", "--config-path", str(tmp_path / "none.json")])

        assert code == cli.EXIT_CONFIGURATION


class TestRunOperation:
    """Test operations wired to the services."""

    @pytest.mark.asyncio
    async def test_approve_bind_success(self, settings, bind_config_file, capsys) -> None:
        """Test successful bind exits 0 and reports every transaction."""
        gateway = FakeGateway()
        args = parse(
            "--operation", "approveBindAndTransferOwnership",
            "--config-path", bind_config_file,
            "--bep20-contract-addr", CONTRACT_ADDRESS.lower(),
        )

        with patched_services(gateway):
            code = await cli.run_operation(args, settings)

        assert code == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "DONE" in out
        for tx in gateway.sent:
            assert tx["tx_hash"] in out

    @pytest.mark.asyncio
    async def test_approve_bind_rejected(self, settings, bind_config_file) -> None:
        """Test rejected bind has its own exit code."""
        gateway = FakeGateway(statuses={WorkflowStep.BIND: 0})
        args = parse(
            "--operation", cli.APPROVE_BIND,
            "--config-path", bind_config_file,
            "--bep20-contract-addr", CONTRACT_ADDRESS,
        )

        with patched_services(gateway):
            code = await cli.run_operation(args, settings)

        assert code == cli.EXIT_BIND_REJECTED
        assert gateway.sent_steps[-1] == WorkflowStep.REJECT

    @pytest.mark.asyncio
    async def test_approve_bind_requires_contract(self, settings, bind_config_file) -> None:
        """Test missing contract address fails before any transaction."""
        gateway = FakeGateway()
        args = parse("--operation", cli.APPROVE_BIND, "--config-path", bind_config_file)

        with patched_services(gateway), pytest.raises(ConfigurationError, match="bep20 contract"):
            await cli.run_operation(args, settings)

        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_aborted_run_still_reports(self, settings, bind_config_file, capsys) -> None:
        gateway = FakeGateway(statuses={WorkflowStep.APPROVE: 0})
        args = parse(
            "--operation", cli.APPROVE_BIND,
            "--config-path", bind_config_file,
            "--bep20-contract-addr", CONTRACT_ADDRESS,
        )

        with patched_services(gateway), pytest.raises(OnChainFailure):
            await cli.run_operation(args, settings)

        assert "ABORTED" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_deploy(self, settings, bind_config_file, capsys) -> None:
        gateway = FakeGateway()
        args = parse("--operation", "deployContract", "--config-path", bind_config_file)

        with patched_services(gateway):
            code = await cli.run_operation(args, settings)

        assert code == cli.EXIT_OK
        assert CONTRACT_ADDRESS in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_refund_uses_ledger_account(self, settings) -> None:
        gateway = FakeGateway(balance=10**17)
        args = parse("--operation", "refundRestBNB", "--ledger-account", CUSTODY_ACCOUNT.lower())

        with patched_services(gateway):
            code = await cli.run_operation(args, settings)

        assert code == cli.EXIT_OK
        assert gateway.sent_for(WorkflowStep.REFUND)["to"] == CUSTODY_ACCOUNT

    @pytest.mark.asyncio
    async def test_refund_falls_back_to_config(self, settings, bind_config_file) -> None:
        gateway = FakeGateway(balance=10**17)
        args = parse("--operation", cli.REFUND_REST_BALANCE, "--config-path", bind_config_file)

        with patched_services(gateway):
            await cli.run_operation(args, settings)

        assert gateway.sent_for(WorkflowStep.REFUND)["to"] == CUSTODY_ACCOUNT

    @pytest.mark.asyncio
    async def test_refund_without_custody(self, settings) -> None:
        args = parse("--operation", cli.REFUND_REST_BALANCE)

        with pytest.raises(ConfigurationError, match="ledger account"):
            await cli.run_operation(args, settings)

    @pytest.mark.asyncio
    async def test_init_key(self, settings, capsys) -> None:
        args = parse("--operation", "initKey", "--ledger-account", CUSTODY_ACCOUNT)

        with patch.object(cli, "build_signer", return_value=FakeSigner()):
            code = await cli.run_operation(args, settings)

        assert code == cli.EXIT_OK
        out = capsys.readouterr().out
        assert CUSTODY_ACCOUNT in out
        assert FakeSigner().address in out

    @pytest.mark.asyncio
    async def test_init_key_with_hardware_wallet(self, settings, capsys) -> None:
        """Test an injected device becomes the operating account."""
        device = MagicMock()
        device.get_address.return_value = CUSTODY_ACCOUNT.lower()
        args = parse("--operation", cli.INIT_KEY)

        code = await cli.run_operation(args, settings, device=device)

        assert code == cli.EXIT_OK
        assert f"Temp account: {CUSTODY_ACCOUNT}" in capsys.readouterr().out
