"""
TTG Crypto Hashing Module

Keccak-256, as used for ERC712 digests, event topics and function
selectors.
"""

from typing import Union

from Crypto.Hash import keccak as _keccak


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Keccak-256 digest (the pre-standard SHA-3 padding Ethereum uses).

    Args:
        data: Raw bytes, or a hex string with or without ``0x``

    Returns:
        32-byte digest
    """
    if isinstance(data, str):
        data = bytes.fromhex(data[2:] if data[:2] in ('0x', '0X') else data)
    return _keccak.new(digest_bits=256, data=data).digest()


def keccak256_hex(data: Union[bytes, str]) -> str:
    return '0x' + keccak256(data).hex()


def signature_topic(signature: str) -> bytes:
    """Topic of an event signature such as ``ResetExecuted()``."""
    return keccak256(signature.encode('utf-8'))


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of a function signature."""
    return keccak256(signature.encode('utf-8'))[:4]
