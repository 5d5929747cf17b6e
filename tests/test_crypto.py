"""
Crypto Test Suite

Coverage:
  - Keccak-256 hashing, event topics, function selectors
  - Checksum addresses and CREATE-style address derivation
  - bytes32 identifier encoding
  - secp256k1 keys and (v, r, s) signatures
  - ERC712 verifier: digest, canonical-encoding checks, expiry, signer
    mismatch, nonce consumption and replay rejection
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from ttg.constants import (
    BALLOT_TYPE,
    ERC712_DOMAIN_TYPE,
    PERMIT_TYPE,
    SECP256K1_N,
    ZERO_ADDRESS,
)
from ttg.crypto import (
    ERC712,
    InvalidAddressError,
    PrivateKey,
    Signature,
    address_from_label,
    address_to_bytes32,
    bytes32_to_int,
    bytes32_to_str,
    function_selector,
    generate_contract_address,
    hash_struct,
    is_valid_address,
    is_zero_address,
    is_zero_bytes32,
    keccak256,
    keccak256_hex,
    signature_topic,
    to_bytes32,
    to_checksum_address,
    type_hash,
)
from ttg.crypto.keys import InvalidKeyError
from ttg.exceptions import (
    InvalidSignature,
    MalleableSignature,
    ReusedNonce,
    SignatureError,
    SignatureExpired,
    SignerMismatch,
)


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

VERIFIER = to_checksum_address("0x" + "c0" * 20)
ALICE_KEY = PrivateKey.from_int(0xA11CE)
BOB_KEY = PrivateKey.from_int(0xB0B)


def make_verifier(name="TTG", chain_id=1, contract=VERIFIER) -> ERC712:
    return ERC712(name, chain_id, contract)


def ballot_hash(proposal_id=1, support=1, track=0, nonce=0, deadline=1_000):
    return hash_struct(
        BALLOT_TYPE,
        ["uint256", "uint8", "uint8", "uint256", "uint256"],
        [proposal_id, support, track, nonce, deadline],
    )


# ══════════════════════════════════════════════════════════════════════
#  HASHING
# ══════════════════════════════════════════════════════════════════════

class TestHashing:

    def test_keccak_empty(self):
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_keccak_hex_prefixed(self):
        assert keccak256_hex(b"").startswith("0x")
        assert len(keccak256_hex(b"abc")) == 66

    def test_transfer_topic(self):
        assert signature_topic("Transfer(address,address,uint256)").hex() == (
            "ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
        )

    def test_function_selector(self):
        assert function_selector("transfer(address,uint256)").hex() == "a9059cbb"

    def test_permit_type_hash(self):
        assert type_hash(PERMIT_TYPE).hex() == (
            "6e71edae12b1b97f4d1f60370fef10105fa2faae0126114a169c64845d6126c9"
        )

    def test_domain_type_hash(self):
        assert type_hash(ERC712_DOMAIN_TYPE).hex() == (
            "8b73c3c69bb8fe3d512ecc4cf759cc79239f7b179b0ffacaa9a75d522b39400f"
        )


# ══════════════════════════════════════════════════════════════════════
#  ADDRESSES
# ══════════════════════════════════════════════════════════════════════

class TestAddress:

    def test_checksum_roundtrip(self):
        lower = "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf"
        assert to_checksum_address(lower) == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

    def test_checksum_from_bytes(self):
        assert to_checksum_address(b"\x00" * 20) == ZERO_ADDRESS

    def test_invalid_address_raises(self):
        with pytest.raises(InvalidAddressError):
            to_checksum_address("0x1234")
        with pytest.raises(InvalidAddressError):
            to_checksum_address(b"\x01" * 19)

    def test_is_valid_address(self):
        assert is_valid_address("0x" + "ab" * 20)
        assert not is_valid_address("alice")
        assert not is_valid_address(None)

    def test_is_zero_address(self):
        assert is_zero_address(ZERO_ADDRESS)
        assert not is_zero_address("0x" + "01" * 20)

    def test_create_address_known_vectors(self):
        sender = "0x6ac7ea33f8831ea9dcc53393aaa88b25a785dbf0"
        assert generate_contract_address(sender, 0).lower() == (
            "0xcd234a471b72ba2f1ccf0a70fcaba648a5eecd8d"
        )
        assert generate_contract_address(sender, 1).lower() == (
            "0x343c43a37d37dff08ae8c4a11544c718abb4fcf8"
        )

    def test_create_address_unique_per_nonce(self):
        sender = "0x" + "11" * 20
        addresses = {generate_contract_address(sender, n) for n in range(20)}
        assert len(addresses) == 20

    def test_address_from_label_deterministic(self):
        assert address_from_label("alice") == address_from_label("alice")
        assert address_from_label("alice") != address_from_label("bob")
        assert is_valid_address(address_from_label("alice"))


# ══════════════════════════════════════════════════════════════════════
#  ENCODING
# ══════════════════════════════════════════════════════════════════════

class TestEncoding:

    def test_text_right_padded(self):
        value = to_bytes32("minters")
        assert len(value) == 32
        assert value.startswith(b"minters")
        assert bytes32_to_str(value) == "minters"

    def test_bytes_passthrough(self):
        raw = b"\x01" * 32
        assert to_bytes32(raw) == raw

    def test_int_big_endian(self):
        assert bytes32_to_int(to_bytes32(5)) == 5
        assert to_bytes32(5)[-1] == 5

    def test_hex_string(self):
        raw = "0x" + "ab" * 32
        assert to_bytes32(raw) == bytes.fromhex("ab" * 32)

    def test_hex_string_wrong_length_raises(self):
        with pytest.raises(ValueError):
            to_bytes32("0xabcd")

    def test_too_long_raises(self):
        with pytest.raises(ValueError):
            to_bytes32("x" * 33)

    def test_negative_int_raises(self):
        with pytest.raises(ValueError):
            to_bytes32(-1)

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            to_bytes32(1.5)

    def test_address_left_padded(self):
        address = "0x" + "ab" * 20
        value = address_to_bytes32(address)
        assert value[:12] == b"\x00" * 12
        assert value[12:] == bytes.fromhex("ab" * 20)

    def test_zero_bytes32(self):
        assert is_zero_bytes32(b"\x00" * 32)
        assert not is_zero_bytes32(to_bytes32("x"))


# ══════════════════════════════════════════════════════════════════════
#  KEYS & SIGNATURES
# ══════════════════════════════════════════════════════════════════════

class TestKeys:

    def test_known_address(self):
        assert PrivateKey.from_int(1).address == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

    def test_from_hex_matches_from_int(self):
        assert PrivateKey.from_hex("0x" + "00" * 31 + "01").address == PrivateKey.from_int(1).address

    def test_invalid_length_raises(self):
        with pytest.raises(InvalidKeyError):
            PrivateKey(b"\x01" * 31)

    def test_generate_unique(self):
        assert PrivateKey.generate().address != PrivateKey.generate().address

    def test_sign_and_recover(self):
        digest = keccak256(b"hello")
        sig = ALICE_KEY.sign_msg_hash(digest)
        assert sig.v in (27, 28)
        assert sig.s <= SECP256K1_N // 2
        assert sig.recover_address(digest) == ALICE_KEY.address

    def test_signature_bytes_roundtrip(self):
        sig = ALICE_KEY.sign_msg_hash(keccak256(b"hello"))
        assert Signature.from_bytes(sig.to_bytes()) == sig

    def test_signature_bad_length_raises(self):
        with pytest.raises(InvalidSignature):
            Signature.from_bytes(b"\x00" * 64)

    def test_sign_requires_32_bytes(self):
        with pytest.raises(ValueError):
            ALICE_KEY.sign_msg_hash(b"short")


# ══════════════════════════════════════════════════════════════════════
#  ERC712 VERIFIER
# ══════════════════════════════════════════════════════════════════════

class TestERC712Domain:

    def test_domain_separator_deterministic(self):
        assert make_verifier().domain_separator == make_verifier().domain_separator

    def test_domain_separator_binds_chain_and_contract(self):
        base = make_verifier().domain_separator
        assert make_verifier(chain_id=2).domain_separator != base
        assert make_verifier(contract="0x" + "c1" * 20).domain_separator != base
        assert make_verifier(name="Other").domain_separator != base

    def test_digest_prefix(self):
        verifier = make_verifier()
        struct = ballot_hash()
        assert verifier.digest(struct) == keccak256(b"\x19\x01" + verifier.domain_separator + struct)

    def test_nonces_start_at_zero(self):
        assert make_verifier().nonces(ALICE_KEY.address) == 0

    def test_to_dict(self):
        d = make_verifier().to_dict()
        assert d["name"] == "TTG"
        assert d["verifyingContract"] == VERIFIER
        assert d["domainSeparator"].startswith("0x")


class TestERC712Verify:

    def test_valid_signature_consumes_nonce(self):
        verifier = make_verifier()
        struct = ballot_hash(nonce=0)
        sig = verifier.sign(ALICE_KEY, struct)
        signer = verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 500, *sig.vrs)
        assert signer == ALICE_KEY.address
        assert verifier.nonces(ALICE_KEY.address) == 1

    def test_replay_rejected(self):
        verifier = make_verifier()
        struct = ballot_hash(nonce=0)
        sig = verifier.sign(ALICE_KEY, struct)
        verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 500, *sig.vrs)
        with pytest.raises(ReusedNonce) as exc:
            verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 500, *sig.vrs)
        assert exc.value.nonce == 0
        assert exc.value.current_nonce == 1

    def test_future_nonce_rejected(self):
        verifier = make_verifier()
        struct = ballot_hash(nonce=3)
        sig = verifier.sign(ALICE_KEY, struct)
        with pytest.raises(ReusedNonce):
            verifier.verify_and_consume(ALICE_KEY.address, struct, 3, 1_000, 500, *sig.vrs)
        assert verifier.nonces(ALICE_KEY.address) == 0

    def test_expired_rejected(self):
        verifier = make_verifier()
        struct = ballot_hash()
        sig = verifier.sign(ALICE_KEY, struct)
        with pytest.raises(SignatureExpired) as exc:
            verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 1_001, *sig.vrs)
        assert exc.value.deadline == 1_000
        assert exc.value.timestamp == 1_001

    def test_deadline_inclusive(self):
        verifier = make_verifier()
        struct = ballot_hash()
        sig = verifier.sign(ALICE_KEY, struct)
        verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 1_000, *sig.vrs)

    def test_signer_mismatch(self):
        verifier = make_verifier()
        struct = ballot_hash()
        sig = verifier.sign(BOB_KEY, struct)
        with pytest.raises(SignerMismatch) as exc:
            verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 500, *sig.vrs)
        assert exc.value.signer == BOB_KEY.address
        assert verifier.nonces(ALICE_KEY.address) == 0

    def test_other_domain_signature_mismatches(self):
        struct = ballot_hash()
        sig = make_verifier(chain_id=2).sign(ALICE_KEY, struct)
        with pytest.raises(SignerMismatch):
            make_verifier().verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 500, *sig.vrs)

    def test_high_s_rejected_as_malleable(self):
        verifier = make_verifier()
        struct = ballot_hash()
        sig = verifier.sign(ALICE_KEY, struct)
        flipped_v = 55 - sig.v
        with pytest.raises(MalleableSignature):
            verifier.verify_and_consume(
                ALICE_KEY.address, struct, 0, 1_000, 500, flipped_v, sig.r, SECP256K1_N - sig.s
            )

    def test_bad_v_rejected(self):
        verifier = make_verifier()
        struct = ballot_hash()
        sig = verifier.sign(ALICE_KEY, struct)
        with pytest.raises(InvalidSignature):
            verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 500, 29, sig.r, sig.s)

    def test_zero_r_rejected(self):
        verifier = make_verifier()
        struct = ballot_hash()
        sig = verifier.sign(ALICE_KEY, struct)
        with pytest.raises(InvalidSignature):
            verifier.verify_and_consume(ALICE_KEY.address, struct, 0, 1_000, 500, sig.v, 0, sig.s)

    def test_all_signature_errors_share_base(self):
        for exc in (InvalidSignature, MalleableSignature, ReusedNonce, SignatureExpired, SignerMismatch):
            assert issubclass(exc, SignatureError)
