"""Tool configuration: environment settings, network profiles and the bind config file."""
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from token_bind.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MAINNET = "mainnet"
TESTNET = "testnet"

MAINNET_CHAIN_ID = 56
TESTNET_CHAIN_ID = 97


@dataclass(frozen=True)
class NetworkProfile:
    """Chain endpoint and identifier selected at startup."""
    name: str
    rpc_url: str
    chain_id: int


class Settings(BaseSettings):
    """Tool settings loaded from environment variables (TOKEN_BIND_ prefix)."""

    model_config = SettingsConfigDict(
        env_prefix="TOKEN_BIND_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Network
    network_type: str = TESTNET
    mainnet_rpc_url: str = "https://bsc-dataseed1.binance.org"
    testnet_rpc_url: str = "https://data-seed-prebsc-1-s1.binance.org:8545"

    # Operating key
    keystore_dir: str = "bind_keystore"
    keystore_password: str = "12345678"  # change for anything holding real funds

    # Fees and gas
    bind_fee_wei: int = 10**16
    default_gas_limit: int = 300_000
    deploy_gas_limit: int = 4_700_000

    # Confirmation polling
    confirmation_timeout_seconds: float = 120.0
    confirmation_poll_min_seconds: float = 1.0
    confirmation_poll_max_seconds: float = 10.0

    # Broadcast retries on transient RPC errors
    rpc_retry_attempts: int = 3

    # Refund
    refund_dust_threshold_wei: int = 10**14

    @field_validator("network_type")
    @classmethod
    def validate_network_type(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in (MAINNET, TESTNET):
            raise ValueError(f"network_type must be '{MAINNET}' or '{TESTNET}'")
        return v

    @property
    def network(self) -> NetworkProfile:
        """Resolve the selected network profile."""
        if self.network_type == MAINNET:
            return NetworkProfile(MAINNET, self.mainnet_rpc_url.strip(), MAINNET_CHAIN_ID)
        return NetworkProfile(TESTNET, self.testnet_rpc_url.strip(), TESTNET_CHAIN_ID)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    logger.info(f"Settings loaded - network: {settings.network_type}, keystore: {settings.keystore_dir}")
    return settings


class BindConfig(BaseModel):
    """Per-token bind configuration file."""
    contract_data: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1)
    bep2_symbol: str = Field(..., min_length=1)
    ledger_account: str = Field(..., min_length=1)

    @field_validator("contract_data")
    @classmethod
    def validate_contract_data(cls, v: str) -> str:
        """Validate the deployment payload is hex."""
        v = v.strip()
        body = v[2:] if v.startswith("0x") else v
        if not body:
            raise ValueError("contract_data is empty")
        if len(body) % 2:
            raise ValueError("contract_data has odd length")
        try:
            bytes.fromhex(body)
        except ValueError:
            raise ValueError("contract_data is not valid hex")
        return body

    @field_validator("symbol", "bep2_symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("symbol must not be blank")
        return v

    @field_validator("ledger_account")
    @classmethod
    def validate_ledger_account(cls, v: str) -> str:
        """Validate custody address format."""
        v = v.strip()
        if not Web3.is_address(v):
            raise ValueError("Invalid address")
        return Web3.to_checksum_address(v)

    @property
    def contract_bytecode(self) -> bytes:
        return bytes.fromhex(self.contract_data)


def load_bind_config(path: Optional[str]) -> BindConfig:
    """Read and validate the JSON bind configuration file."""
    if not path:
        raise ConfigurationError("config path is empty")

    config_file = Path(path)
    try:
        raw = json.loads(config_file.read_text())
    except FileNotFoundError:
        raise ConfigurationError(f"config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"config file is not valid JSON: {path}", str(e))

    try:
        return BindConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"invalid config file {path}",
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
        )
