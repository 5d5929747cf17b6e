"""
ERC712 Typed-Data Verifier

Domain-separated digests and per-account nonces for off-chain signed
authorizations:

  1. reject expired deadlines            → SignatureExpired
  2. reject non-canonical encodings      → MalleableSignature / InvalidSignature
  3. recover the signer from the digest  → InvalidSignature
  4. compare against the claimed account → SignerMismatch
  5. require nonce == current nonce      → ReusedNonce
  6. consume the nonce

Canonical checks are done here explicitly rather than relying on the
leniency of the underlying ECDSA library.
"""

from typing import Any, Dict, Sequence

from eth_abi import encode

from ..constants import (
    ERC712_DOMAIN_TYPE,
    ERC712_VERSION,
    SECP256K1_N,
    SECP256K1_N_HALF,
)
from ..exceptions import (
    InvalidSignature,
    MalleableSignature,
    ReusedNonce,
    SignatureExpired,
    SignerMismatch,
)
from .address import to_checksum_address
from .hashing import keccak256
from .keys import PrivateKey, Signature


def type_hash(type_string: str) -> bytes:
    return keccak256(type_string.encode("utf-8"))


def hash_struct(type_string: str, types: Sequence[str], values: Sequence[Any]) -> bytes:
    """keccak256(typeHash || abi.encode(values))"""
    return keccak256(encode(["bytes32", *types], [type_hash(type_string), *values]))


class ERC712:
    """
    Domain separator and nonce book for one verifying contract.

    Holds no reference to the ledger; the caller supplies the current
    timestamp so the object can be snapshotted with its owner's state.
    """

    def __init__(
        self,
        name: str,
        chain_id: int,
        verifying_contract: str,
        version: str = ERC712_VERSION,
    ):
        self.name = name
        self.version = version
        self.chain_id = chain_id
        self.verifying_contract = to_checksum_address(verifying_contract)
        self.domain_separator = hash_struct(
            ERC712_DOMAIN_TYPE,
            ["bytes32", "bytes32", "uint256", "address"],
            [
                keccak256(name.encode("utf-8")),
                keccak256(version.encode("utf-8")),
                chain_id,
                self.verifying_contract,
            ],
        )
        self._nonces: Dict[str, int] = {}

    # ── Views ─────────────────────────────────────────────────────────

    def nonces(self, account: str) -> int:
        return self._nonces.get(to_checksum_address(account), 0)

    def digest(self, struct_hash: bytes) -> bytes:
        """EIP-712: keccak256(0x19 0x01 domainSeparator structHash)"""
        return keccak256(b"\x19\x01" + self.domain_separator + struct_hash)

    # ── Verification ──────────────────────────────────────────────────

    @staticmethod
    def recover(digest: bytes, v: int, r: int, s: int) -> str:
        """Recover the signer of *digest*, rejecting non-canonical encodings."""
        if s > SECP256K1_N_HALF:
            raise MalleableSignature(f"Signature s-value {hex(s)} is in the upper half order")
        if v not in (27, 28):
            raise InvalidSignature(f"Invalid signature v-value {v}")
        if not (0 < r < SECP256K1_N) or s == 0:
            raise InvalidSignature("Signature r/s out of range")
        return Signature(v, r, s).recover_address(digest)

    def verify_and_consume(
        self,
        account: str,
        struct_hash: bytes,
        nonce: int,
        deadline: int,
        timestamp: int,
        v: int,
        r: int,
        s: int,
    ) -> str:
        """
        Authorize a signed payload on behalf of *account* and consume its nonce.

        Returns:
            The checksum address of the signer.
        """
        if timestamp > deadline:
            raise SignatureExpired(deadline, timestamp)

        account = to_checksum_address(account)
        signer = self.recover(self.digest(struct_hash), v, r, s)
        if signer != account:
            raise SignerMismatch(account, signer)

        current = self._nonces.get(account, 0)
        if nonce != current:
            raise ReusedNonce(nonce, current)

        self._nonces[account] = current + 1
        return signer

    # ── Signing (off-chain side) ──────────────────────────────────────

    def sign(self, private_key: PrivateKey, struct_hash: bytes) -> Signature:
        """Sign a struct hash under this domain."""
        return private_key.sign_msg_hash(self.digest(struct_hash))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
            "domainSeparator": "0x" + self.domain_separator.hex(),
        }
