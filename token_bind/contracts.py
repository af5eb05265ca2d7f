"""Call data for the BEP20 token, Ownable and TokenManager contracts."""
from typing import Any, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import function_signature_to_4byte_selector
from web3 import Web3

# System TokenManager contract on BNB Smart Chain
TOKEN_MANAGER_ADDRESS = Web3.to_checksum_address("0x0000000000000000000000000000000000001008")

# Relay fee paid with approveBind / rejectBind (0.01 BNB)
BIND_RELAY_FEE_WEI = 10**16

TOTAL_SUPPLY = "totalSupply()"
APPROVE = "approve(address,uint256)"
APPROVE_BIND = "approveBind(address,string)"
REJECT_BIND = "rejectBind(address,string)"
TRANSFER_OWNERSHIP = "transferOwnership(address)"


def _arg_types(signature: str) -> list:
    inner = signature[signature.index("(") + 1:-1]
    return [t for t in inner.split(",") if t]


def encode_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """Selector followed by ABI-encoded arguments."""
    types = _arg_types(signature)
    if len(types) != len(args):
        raise ValueError(f"{signature} expects {len(types)} arguments, got {len(args)}")
    selector = function_signature_to_4byte_selector(signature)
    return selector + (abi_encode(types, list(args)) if types else b"")


def decode_call(signature: str, data: bytes) -> tuple:
    """Decode the arguments of call data produced by encode_call."""
    selector = function_signature_to_4byte_selector(signature)
    if bytes(data[:4]) != selector:
        raise ValueError(f"call data is not a {signature} call")
    return tuple(abi_decode(_arg_types(signature), bytes(data[4:])))


def decode_uint256(result: bytes) -> int:
    return abi_decode(["uint256"], bytes(result))[0]


def total_supply_call() -> bytes:
    return encode_call(TOTAL_SUPPLY)


def approve_call(spender: str, amount: int) -> bytes:
    return encode_call(APPROVE, [Web3.to_checksum_address(spender), amount])


def approve_bind_call(contract_address: str, legacy_symbol: str) -> bytes:
    return encode_call(APPROVE_BIND, [Web3.to_checksum_address(contract_address), legacy_symbol])


def reject_bind_call(contract_address: str, legacy_symbol: str) -> bytes:
    return encode_call(REJECT_BIND, [Web3.to_checksum_address(contract_address), legacy_symbol])


def transfer_ownership_call(new_owner: str) -> bytes:
    return encode_call(TRANSFER_OWNERSHIP, [Web3.to_checksum_address(new_owner)])
