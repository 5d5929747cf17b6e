"""
TTG Crypto Module

- Keccak-256 hashing, event topics and selectors
- Checksum addresses and CREATE-style address derivation
- bytes32 identifier encoding
- secp256k1 keys and ERC712 typed-data verification
"""

from .hashing import keccak256, keccak256_hex, signature_topic, function_selector
from .address import (
    InvalidAddressError,
    address_from_label,
    generate_contract_address,
    is_valid_address,
    is_zero_address,
    to_checksum_address,
)
from .encoding import (
    address_to_bytes32,
    bytes32_to_int,
    bytes32_to_str,
    is_zero_bytes32,
    to_bytes32,
)
from .keys import PrivateKey, Signature
from .eip712 import ERC712, hash_struct, type_hash

__all__ = [
    # Hashing
    "keccak256",
    "keccak256_hex",
    "signature_topic",
    "function_selector",
    # Address
    "InvalidAddressError",
    "address_from_label",
    "generate_contract_address",
    "is_valid_address",
    "is_zero_address",
    "to_checksum_address",
    # Encoding
    "address_to_bytes32",
    "to_bytes32",
    "bytes32_to_str",
    "bytes32_to_int",
    "is_zero_bytes32",
    # Keys
    "PrivateKey",
    "Signature",
    # ERC712
    "ERC712",
    "hash_struct",
    "type_hash",
]
