"""
Token Test Suite

Coverage:
  - ERC20 transfer / approve / transferFrom / allowance adjustments
  - Balance and allowance failures leave state untouched
  - Minter-gated minting
  - ERC712 permit
  - VotingToken checkpoints, delegation, past-vote lookups
  - delegateBySig
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# ── Token imports ─────────────────────────────────────────────────────
from ttg.tokens import Token, VotingToken

# ── Shared ────────────────────────────────────────────────────────────
from ttg.constants import ZERO_ADDRESS
from ttg.crypto import PrivateKey, signature_topic, to_checksum_address
from ttg.exceptions import (
    FutureLookup,
    InsufficientAllowance,
    InsufficientBalance,
    ReusedNonce,
    SignatureExpired,
    SignerMismatch,
    TokenError,
    Unauthorized,
)
from ttg.ledger import Ledger


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ADMIN = to_checksum_address("0x" + "ad" * 20)
ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b0" * 20)
CAROL = to_checksum_address("0x" + "ca" * 20)
TOKEN = to_checksum_address("0x" + "70" * 20)

SIGNER_KEY = PrivateKey.from_int(0x5EED)
SIGNER = SIGNER_KEY.address


def make_token(cls=Token, balances=None, ledger=None, **kwargs) -> Token:
    ledger = ledger or Ledger(timestamp=1_000)
    kwargs.setdefault("name", "Cash")
    kwargs.setdefault("symbol", "CASH")
    token = cls(ledger, TOKEN, admin=ADMIN, **kwargs)
    token.add_minter(ADMIN, ADMIN)
    for account, amount in (balances or {}).items():
        token.mint(ADMIN, account, amount)
    return token


def make_votes(balances=None, **kwargs) -> VotingToken:
    kwargs.setdefault("name", "Power")
    kwargs.setdefault("symbol", "POWER")
    kwargs.setdefault("decimals", 0)
    return make_token(VotingToken, balances, **kwargs)


# ══════════════════════════════════════════════════════════════════════
#  CONSTRUCTION
# ══════════════════════════════════════════════════════════════════════

class TestTokenCreation:

    def test_metadata(self):
        token = make_token(decimals=6)
        assert token.name == "Cash"
        assert token.symbol == "CASH"
        assert token.decimals == 6
        assert token.total_supply == 0

    def test_empty_name_rejected(self):
        with pytest.raises(TokenError, match="name"):
            make_token(name="")

    def test_bad_decimals_rejected(self):
        with pytest.raises(TokenError, match="Decimals"):
            make_token(decimals=19)

    def test_to_dict(self):
        token = make_token(balances={ALICE: 10, BOB: 0})
        d = token.to_dict()
        assert d["symbol"] == "CASH"
        assert d["totalSupply"] == 10
        assert d["holders"] == 1


# ══════════════════════════════════════════════════════════════════════
#  TRANSFERS
# ══════════════════════════════════════════════════════════════════════

class TestTransfers:

    def test_transfer(self):
        token = make_token(balances={ALICE: 100})
        assert token.transfer(ALICE, BOB, 40) is True
        assert token.balance_of(ALICE) == 60
        assert token.balance_of(BOB) == 40
        assert token.total_supply == 100

    def test_transfer_accepts_lowercase(self):
        token = make_token(balances={ALICE: 100})
        token.transfer(ALICE.lower(), BOB.lower(), 1)
        assert token.balance_of(BOB) == 1

    def test_transfer_emits_event(self):
        token = make_token(balances={ALICE: 100})
        token.transfer(ALICE, BOB, 5)
        event = token.ledger.events("Transfer")[-1]
        assert event.args == {"sender": ALICE, "recipient": BOB, "value": 5}
        assert event.topic == signature_topic("Transfer(address,address,uint256)")

    def test_insufficient_balance(self):
        token = make_token(balances={ALICE: 10})
        with pytest.raises(InsufficientBalance):
            token.transfer(ALICE, BOB, 11)
        assert token.balance_of(ALICE) == 10
        assert token.balance_of(BOB) == 0

    def test_transfer_to_zero_address_rejected(self):
        token = make_token(balances={ALICE: 10})
        with pytest.raises(TokenError, match="zero address"):
            token.transfer(ALICE, ZERO_ADDRESS, 1)

    def test_negative_amount_rejected(self):
        token = make_token(balances={ALICE: 10})
        with pytest.raises(TokenError, match="non-negative"):
            token.transfer(ALICE, BOB, -1)

    def test_zero_transfer_allowed(self):
        token = make_token(balances={ALICE: 10})
        assert token.transfer(ALICE, BOB, 0)


class TestAllowances:

    def test_approve_and_transfer_from(self):
        token = make_token(balances={ALICE: 100})
        token.approve(ALICE, BOB, 30)
        assert token.allowance(ALICE, BOB) == 30
        token.transfer_from(BOB, ALICE, CAROL, 20)
        assert token.allowance(ALICE, BOB) == 10
        assert token.balance_of(CAROL) == 20

    def test_transfer_from_insufficient_allowance(self):
        token = make_token(balances={ALICE: 100})
        token.approve(ALICE, BOB, 5)
        with pytest.raises(InsufficientAllowance):
            token.transfer_from(BOB, ALICE, CAROL, 6)
        assert token.allowance(ALICE, BOB) == 5

    def test_transfer_from_insufficient_balance_restores_allowance(self):
        token = make_token(balances={ALICE: 5})
        token.approve(ALICE, BOB, 50)
        with pytest.raises(InsufficientBalance):
            token.transfer_from(BOB, ALICE, CAROL, 10)
        assert token.allowance(ALICE, BOB) == 50
        assert token.balance_of(ALICE) == 5

    def test_increase_and_decrease(self):
        token = make_token()
        token.increase_allowance(ALICE, BOB, 10)
        token.increase_allowance(ALICE, BOB, 5)
        token.decrease_allowance(ALICE, BOB, 3)
        assert token.allowance(ALICE, BOB) == 12

    def test_decrease_below_zero_rejected(self):
        token = make_token()
        token.approve(ALICE, BOB, 2)
        with pytest.raises(InsufficientAllowance):
            token.decrease_allowance(ALICE, BOB, 3)

    def test_approval_event(self):
        token = make_token()
        token.approve(ALICE, BOB, 7)
        event = token.ledger.events("Approval")[-1]
        assert event.args == {"owner": ALICE, "spender": BOB, "value": 7}


class TestMinting:

    def test_mint_by_minter(self):
        token = make_token()
        token.mint(ADMIN, ALICE, 50)
        assert token.balance_of(ALICE) == 50
        assert token.total_supply == 50
        event = token.ledger.events("Transfer")[-1]
        assert event.args["sender"] == ZERO_ADDRESS

    def test_mint_by_non_minter_rejected(self):
        token = make_token()
        with pytest.raises(Unauthorized):
            token.mint(ALICE, ALICE, 50)
        assert token.total_supply == 0

    def test_add_minter_admin_only(self):
        token = make_token()
        with pytest.raises(Unauthorized):
            token.add_minter(ALICE, ALICE)
        token.add_minter(ADMIN, ALICE)
        assert token.is_minter(ALICE)
        token.mint(ALICE, BOB, 1)

    def test_token_without_admin_has_no_minters(self):
        token = Token(Ledger(), TOKEN, "Cash", "CASH")
        with pytest.raises(Unauthorized):
            token.add_minter(ADMIN, ADMIN)


class TestPermit:

    def test_permit_sets_allowance(self):
        token = make_token()
        deadline = token.now + 100
        sig = SIGNER_KEY.sign_msg_hash(token.permit_digest(SIGNER, BOB, 25, 0, deadline))
        token.permit(SIGNER, BOB, 25, 0, deadline, *sig.vrs)
        assert token.allowance(SIGNER, BOB) == 25
        assert token.nonces(SIGNER) == 1

    def test_permit_replay_rejected(self):
        token = make_token()
        deadline = token.now + 100
        sig = SIGNER_KEY.sign_msg_hash(token.permit_digest(SIGNER, BOB, 25, 0, deadline))
        token.permit(SIGNER, BOB, 25, 0, deadline, *sig.vrs)
        with pytest.raises(ReusedNonce):
            token.permit(SIGNER, BOB, 25, 0, deadline, *sig.vrs)
        assert token.nonces(SIGNER) == 1

    def test_permit_signed_for_another_nonce(self):
        token = make_token()
        deadline = token.now + 100
        sig = SIGNER_KEY.sign_msg_hash(token.permit_digest(SIGNER, BOB, 25, 1, deadline))
        with pytest.raises(ReusedNonce):
            token.permit(SIGNER, BOB, 25, 1, deadline, *sig.vrs)
        assert token.allowance(SIGNER, BOB) == 0

    def test_permit_expired(self):
        token = make_token()
        deadline = token.now - 1
        sig = SIGNER_KEY.sign_msg_hash(token.permit_digest(SIGNER, BOB, 25, 0, deadline))
        with pytest.raises(SignatureExpired):
            token.permit(SIGNER, BOB, 25, 0, deadline, *sig.vrs)
        assert token.allowance(SIGNER, BOB) == 0

    def test_permit_wrong_owner(self):
        token = make_token()
        deadline = token.now + 100
        sig = SIGNER_KEY.sign_msg_hash(token.permit_digest(ALICE, BOB, 25, 0, deadline))
        with pytest.raises(SignerMismatch):
            token.permit(ALICE, BOB, 25, 0, deadline, *sig.vrs)


# ══════════════════════════════════════════════════════════════════════
#  VOTING POWER
# ══════════════════════════════════════════════════════════════════════

class TestVotingPower:

    def test_balance_counts_as_own_votes(self):
        token = make_votes({ALICE: 100})
        assert token.delegates(ALICE) == ALICE
        assert token.get_votes(ALICE) == 100

    def test_transfer_moves_votes(self):
        token = make_votes({ALICE: 100})
        token.transfer(ALICE, BOB, 30)
        assert token.get_votes(ALICE) == 70
        assert token.get_votes(BOB) == 30

    def test_delegate_moves_votes(self):
        token = make_votes({ALICE: 100, BOB: 10})
        token.delegate(ALICE, BOB)
        assert token.delegates(ALICE) == BOB
        assert token.get_votes(ALICE) == 0
        assert token.get_votes(BOB) == 110

    def test_transfer_from_delegator_reduces_delegatee(self):
        token = make_votes({ALICE: 100})
        token.delegate(ALICE, BOB)
        token.transfer(ALICE, CAROL, 40)
        assert token.get_votes(BOB) == 60
        assert token.get_votes(CAROL) == 40

    def test_redelegate(self):
        token = make_votes({ALICE: 100})
        token.delegate(ALICE, BOB)
        token.delegate(ALICE, CAROL)
        assert token.get_votes(BOB) == 0
        assert token.get_votes(CAROL) == 100

    def test_delegation_events(self):
        token = make_votes({ALICE: 100})
        token.delegate(ALICE, BOB)
        changed = token.ledger.events("DelegateChanged")[-1]
        assert changed.args == {"delegator": ALICE, "from_delegate": ALICE, "to_delegate": BOB}
        moved = token.ledger.events("DelegateVotesChanged")[-1]
        assert moved.args["delegate"] == BOB
        assert moved.args["new_balance"] == 100


class TestPastLookups:

    def test_past_votes_fixed_at_timepoint(self):
        token = make_votes({ALICE: 100})
        t0 = token.now
        token.ledger.advance_time(10)
        token.transfer(ALICE, BOB, 60)
        token.ledger.advance_time(10)
        assert token.get_past_votes(ALICE, t0) == 100
        assert token.get_past_votes(ALICE, t0 + 9) == 100
        assert token.get_past_votes(ALICE, t0 + 10) == 40
        assert token.get_past_votes(BOB, t0) == 0

    def test_before_first_checkpoint_is_zero(self):
        token = make_votes({ALICE: 100})
        token.ledger.advance_time(10)
        assert token.get_past_votes(ALICE, token.now - 100) == 0

    def test_past_total_supply(self):
        token = make_votes({ALICE: 100})
        t0 = token.now
        token.ledger.advance_time(10)
        token.mint(ADMIN, BOB, 50)
        token.ledger.advance_time(1)
        assert token.get_past_total_supply(t0) == 100
        assert token.get_past_total_supply(t0 + 10) == 150

    def test_same_timestamp_checkpoints_merge(self):
        token = make_votes({ALICE: 100})
        token.transfer(ALICE, BOB, 10)
        token.transfer(ALICE, BOB, 10)
        assert token._checkpoints[ALICE] == [(token.now, 80)]

    def test_current_timepoint_rejected(self):
        token = make_votes({ALICE: 100})
        with pytest.raises(FutureLookup):
            token.get_past_votes(ALICE, token.now)
        with pytest.raises(FutureLookup):
            token.get_past_total_supply(token.now + 1)

    def test_failed_transfer_leaves_checkpoints(self):
        token = make_votes({ALICE: 10})
        with pytest.raises(InsufficientBalance):
            token.transfer(ALICE, BOB, 11)
        assert token.get_votes(ALICE) == 10
        assert token.get_votes(BOB) == 0


class TestDelegateBySig:

    def sign(self, token, delegatee, nonce, expiry):
        return SIGNER_KEY.sign_msg_hash(token.delegation_digest(delegatee, nonce, expiry))

    def test_delegate_by_sig(self):
        token = make_votes({SIGNER: 40})
        expiry = token.now + 100
        sig = self.sign(token, BOB, 0, expiry)
        assert token.delegate_by_sig(BOB, 0, expiry, *sig.vrs) == SIGNER
        assert token.delegates(SIGNER) == BOB
        assert token.get_votes(BOB) == 40
        assert token.nonces(SIGNER) == 1

    def test_replay_rejected(self):
        token = make_votes({SIGNER: 40})
        expiry = token.now + 100
        sig = self.sign(token, BOB, 0, expiry)
        token.delegate_by_sig(BOB, 0, expiry, *sig.vrs)
        with pytest.raises(ReusedNonce):
            token.delegate_by_sig(BOB, 0, expiry, *sig.vrs)

    def test_expired_rejected(self):
        token = make_votes({SIGNER: 40})
        expiry = token.now - 1
        sig = self.sign(token, BOB, 0, expiry)
        with pytest.raises(SignatureExpired):
            token.delegate_by_sig(BOB, 0, expiry, *sig.vrs)
        assert token.delegates(SIGNER) == SIGNER

    def test_tampered_delegatee_delegates_for_other_signer(self):
        token = make_votes({SIGNER: 40})
        expiry = token.now + 100
        sig = self.sign(token, BOB, 0, expiry)
        # a different payload recovers to an unrelated account with nothing to delegate
        signer = token.delegate_by_sig(CAROL, 0, expiry, *sig.vrs)
        assert signer != SIGNER
        assert token.delegates(SIGNER) == SIGNER
