"""
TTG Crypto Address Module

Ethereum-style addresses with EIP-55 checksums, and CREATE-style address
derivation for protocol components (lists, governors).
"""

from typing import Union

import rlp
from eth_utils import is_address, keccak, to_checksum_address as _to_checksum

from ..constants import ZERO_ADDRESS
from ..exceptions import TTGException


class InvalidAddressError(TTGException, ValueError):
    """Invalid address format."""
    pass


def is_valid_address(address: str) -> bool:
    """Check if *address* is a 20-byte hex address (checksum optional)."""
    return isinstance(address, str) and is_address(address)


def to_checksum_address(address: Union[str, bytes]) -> str:
    """
    Normalize an address to EIP-55 checksum format.

    Raises:
        InvalidAddressError: if the value is not a 20-byte address
    """
    if isinstance(address, bytes):
        if len(address) != 20:
            raise InvalidAddressError(f"Address must be 20 bytes, got {len(address)}")
        return _to_checksum(address)
    if not is_valid_address(address):
        raise InvalidAddressError(f"Invalid address: {address!r}")
    return _to_checksum(address)


def is_zero_address(address: str) -> bool:
    return address.lower() == ZERO_ADDRESS


def generate_contract_address(sender: str, nonce: int) -> str:
    """
    Generate contract address using CREATE opcode logic.

    Address = keccak256(rlp([sender, nonce]))[-20:]

    Args:
        sender: Deploying address
        nonce: Deployer nonce

    Returns:
        Contract address (checksum format)
    """
    sender_bytes = bytes.fromhex(to_checksum_address(sender)[2:])
    rlp_encoded = rlp.encode([sender_bytes, nonce])
    return to_checksum_address(keccak(rlp_encoded)[-20:])


def address_from_label(label: str) -> str:
    """
    Deterministic address for a human-readable label.

    Used for externally owned bootstrap accounts (deployer, admin) that are
    configured by name rather than key.
    """
    return to_checksum_address(keccak(text=label)[-20:])
