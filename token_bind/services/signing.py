"""Signing backends for the operating account.

Two implementations of the ``Signer`` protocol:
1. KeystoreSigner: local encrypted keystore file (created on first use)
2. HardwareWalletSigner: delegates to a connected hardware wallet device

The backend is chosen once at startup by ``build_signer``: an injected device
selects the hardware wallet, otherwise the keystore is used. Device discovery
is left to the embedding program. The workflow code never branches on the
signer kind.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Tuple, runtime_checkable

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from token_bind.config import Settings
from token_bind.exceptions import ConfigurationError, SignerError

logger = logging.getLogger(__name__)


@runtime_checkable
class Signer(Protocol):
    """Produces signed raw transactions for the operating account."""

    @property
    def address(self) -> str:
        """Checksum address of the operating account."""

    async def sign_transaction(self, tx_dict: dict) -> Tuple[bytes, str]:
        """Sign a transaction dict. Returns (raw_tx, tx_hash)."""


@runtime_checkable
class HardwareWalletDevice(Protocol):
    """Minimal interface expected from a connected hardware wallet."""

    def get_address(self) -> str:
        """Address of the first derived account."""

    def sign_transaction(self, tx_dict: dict) -> bytes:
        """Sign a transaction on the device and return the raw signed bytes."""


def _keyfile_name(address: str) -> str:
    timestamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S.%fZ")
    return f"UTC--{timestamp}--{address[2:].lower()}"


def load_or_create_keystore_account(
    keystore_dir: str,
    password: str,
    kdf: Optional[str] = None,
    iterations: Optional[int] = None,
) -> LocalAccount:
    """
    Load the single operating key from ``keystore_dir`` or create one.

    An empty directory gets a freshly generated encrypted key. More than one
    key file is refused so the operating account is never ambiguous.
    """
    directory = Path(keystore_dir)
    directory.mkdir(parents=True, exist_ok=True)
    keyfiles = sorted(p for p in directory.iterdir() if p.is_file())

    if not keyfiles:
        account = Account.create()
        encrypted = Account.encrypt(account.key, password, kdf=kdf, iterations=iterations)
        keyfile = directory / _keyfile_name(account.address)
        keyfile.write_text(json.dumps(encrypted))
        keyfile.chmod(0o600)
        logger.info(f"Create new account {account.address}")
        return account

    if len(keyfiles) > 1:
        raise ConfigurationError(f"expect only one or zero keystore file in {directory}")

    try:
        encrypted = json.loads(keyfiles[0].read_text())
        private_key = Account.decrypt(encrypted, password)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"keystore file {keyfiles[0]} is not valid JSON", str(e))
    except ValueError as e:
        raise ConfigurationError(f"cannot unlock keystore file {keyfiles[0]}", str(e))

    account = Account.from_key(private_key)
    logger.info(f"Load account {account.address}")
    return account


class KeystoreSigner:
    """Signer backed by a decrypted local keystore account."""

    def __init__(self, account: LocalAccount):
        self._account = account

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_transaction(self, tx_dict: dict) -> Tuple[bytes, str]:
        try:
            signed = self._account.sign_transaction(tx_dict)
        except Exception as e:
            logger.error(f"Keystore signing failed: {e}")
            raise SignerError("keystore signer refused transaction", str(e))

        # eth-account renamed rawTransaction to raw_transaction
        raw_tx = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
        tx_hash = Web3.to_hex(signed.hash)
        logger.debug(f"Transaction signed with keystore: {tx_hash}")
        return bytes(raw_tx), tx_hash


class HardwareWalletSigner:
    """Signer that forwards transactions to a hardware wallet device."""

    def __init__(self, device: HardwareWalletDevice):
        self._device = device
        self._address: Optional[str] = None

    @property
    def address(self) -> str:
        if self._address is None:
            try:
                self._address = Web3.to_checksum_address(self._device.get_address())
            except Exception as e:
                raise SignerError("hardware wallet returned no usable account", str(e))
        return self._address

    async def sign_transaction(self, tx_dict: dict) -> Tuple[bytes, str]:
        try:
            raw_tx = bytes(self._device.sign_transaction(tx_dict))
        except Exception as e:
            logger.error(f"Hardware wallet signing failed: {e}")
            raise SignerError("hardware wallet refused transaction", str(e))

        tx_hash = Web3.to_hex(Web3.keccak(raw_tx))
        logger.debug(f"Transaction signed with hardware wallet: {tx_hash}")
        return raw_tx, tx_hash


def build_signer(settings: Settings, device: Optional[HardwareWalletDevice] = None) -> Signer:
    """Select the signing backend once at startup."""
    if device is not None:
        signer = HardwareWalletSigner(device)
        backend = "hardware wallet"
    else:
        account = load_or_create_keystore_account(settings.keystore_dir, settings.keystore_password)
        signer = KeystoreSigner(account)
        backend = "keystore"

    logger.info(f"Operating account {signer.address} ({backend})")
    return signer
