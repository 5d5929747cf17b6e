"""
TTG Encoding Helpers

Fixed-width (bytes32) identifiers used for list names, config keys and
config values, mirroring Solidity's ``bytes32("name")`` conversion.
"""

from typing import Union

from eth_utils import decode_hex

from ..constants import BYTES32_LENGTH, ZERO_BYTES32

Bytes32Like = Union[bytes, str, int]


def to_bytes32(value: Bytes32Like) -> bytes:
    """
    Convert *value* to a 32-byte identifier.

    - ``bytes`` of length <= 32 are right-padded with zeros
    - ``str`` starting with ``0x`` is decoded as hex (64 hex chars max)
    - any other ``str`` is UTF-8 encoded and right-padded
    - ``int`` is encoded big-endian (uint256)
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0 or value >= 2 ** 256:
            raise ValueError(f"Integer {value} does not fit in bytes32")
        return value.to_bytes(BYTES32_LENGTH, "big")
    if isinstance(value, str):
        if value.startswith(("0x", "0X")):
            raw = decode_hex(value)
            if len(raw) != BYTES32_LENGTH:
                raise ValueError(f"Hex bytes32 must be 32 bytes, got {len(raw)}")
            return raw
        value = value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        if len(value) > BYTES32_LENGTH:
            raise ValueError(f"Value of {len(value)} bytes does not fit in bytes32")
        return bytes(value).ljust(BYTES32_LENGTH, b"\x00")
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes32")


def bytes32_to_str(value: bytes) -> str:
    """Inverse of ``to_bytes32`` for text identifiers (trailing zeros stripped)."""
    return value.rstrip(b"\x00").decode("utf-8", errors="replace")


def bytes32_to_int(value: bytes) -> int:
    return int.from_bytes(value, "big")


def is_zero_bytes32(value: bytes) -> bool:
    return value == ZERO_BYTES32


def address_to_bytes32(address: str) -> bytes:
    """Left-pad a 20-byte address, as ``bytes32(uint256(uint160(addr)))``."""
    raw = decode_hex(address)
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}")
    return raw.rjust(BYTES32_LENGTH, b"\x00")
