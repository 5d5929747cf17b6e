"""
TTG Crypto Keys Module

secp256k1 key management for off-chain signed authorizations (votes,
delegations, permits). Wraps eth-keys.
"""

import secrets
from typing import Tuple

from eth_keys import keys as eth_keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import decode_hex

from ..constants import SECP256K1_N, SECP256K1_N_HALF
from ..exceptions import InvalidSignature


class InvalidKeyError(ValueError):
    """Invalid cryptographic key."""
    pass


class PrivateKey:
    """
    secp256k1 private key used to sign ERC712 digests.
    """

    def __init__(self, key_bytes: bytes):
        """
        Initialize from raw 32-byte private key.

        Raises:
            InvalidKeyError: If key bytes are invalid
        """
        if len(key_bytes) != 32:
            raise InvalidKeyError(f"Private key must be 32 bytes, got {len(key_bytes)}")

        try:
            self._key = eth_keys.PrivateKey(key_bytes)
        except ValidationError as e:
            raise InvalidKeyError(f"Invalid private key: {e}") from e

    @classmethod
    def from_hex(cls, hex_str: str) -> "PrivateKey":
        return cls(decode_hex(hex_str))

    @classmethod
    def from_int(cls, key_int: int) -> "PrivateKey":
        return cls(key_int.to_bytes(32, byteorder='big'))

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(secrets.token_bytes(32))

    @property
    def address(self) -> str:
        """Checksum address of the corresponding public key."""
        return self._key.public_key.to_checksum_address()

    def sign_msg_hash(self, msg_hash: bytes) -> "Signature":
        """
        Sign a 32-byte message hash.

        The result is always in canonical (low-s) form with ``v`` in {27, 28}.
        """
        if len(msg_hash) != 32:
            raise ValueError(f"Message hash must be 32 bytes, got {len(msg_hash)}")

        raw = self._key.sign_msg_hash(msg_hash)
        v, r, s = raw.v, raw.r, raw.s
        if s > SECP256K1_N_HALF:
            s = SECP256K1_N - s
            v ^= 1
        return Signature(v + 27, r, s)

    def __repr__(self) -> str:
        return f"PrivateKey(address={self.address})"


class Signature:
    """
    ECDSA signature in (v, r, s) form, ``v`` in {27, 28}.
    """

    def __init__(self, v: int, r: int, s: int):
        self.v = v
        self.r = r
        self.s = s

    @classmethod
    def from_bytes(cls, sig_bytes: bytes) -> "Signature":
        """
        Create from 65-byte signature (r[32] + s[32] + v[1]).
        """
        if len(sig_bytes) != 65:
            raise InvalidSignature(f"Signature must be 65 bytes, got {len(sig_bytes)}")

        r = int.from_bytes(sig_bytes[0:32], byteorder='big')
        s = int.from_bytes(sig_bytes[32:64], byteorder='big')
        v = sig_bytes[64]
        return cls(v, r, s)

    @property
    def vrs(self) -> Tuple[int, int, int]:
        return (self.v, self.r, self.s)

    def to_bytes(self) -> bytes:
        return (
            self.r.to_bytes(32, byteorder='big')
            + self.s.to_bytes(32, byteorder='big')
            + bytes([self.v])
        )

    def recover_address(self, msg_hash: bytes) -> str:
        """
        Recover the signer address without any canonical-form checks.

        Raises:
            InvalidSignature: if eth-keys rejects the components or recovery fails
        """
        try:
            eth_sig = eth_keys.Signature(vrs=(self.v - 27, self.r, self.s))
            public_key = eth_sig.recover_public_key_from_msg_hash(msg_hash)
        except (BadSignature, ValidationError) as e:
            raise InvalidSignature(f"Signature recovery failed: {e}") from e
        return public_key.to_checksum_address()

    def __eq__(self, other) -> bool:
        return isinstance(other, Signature) and self.vrs == other.vrs

    def __repr__(self) -> str:
        return f"Signature(v={self.v}, r={hex(self.r)[:10]}..., s={hex(self.s)[:10]}...)"
