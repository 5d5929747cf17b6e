"""
Auction Vault Test Suite

Coverage:
  - Deposit accounting (governor only, weights accumulate)
  - Round opening, expiry and rollover of unsold inventory
  - Non-increasing price curve
  - Settlement: price check, all-or-nothing transfer, pro-rata credit,
    rounding dust carried forward
  - Claims
  - Rollback on failed or re-entrant payment
"""

import os
import sys

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# ── Auction imports ───────────────────────────────────────────────────
from ttg.auction import AuctionRound, AuctionRoundStatus, AuctionVault

# ── Shared ────────────────────────────────────────────────────────────
from ttg.crypto import to_checksum_address
from ttg.exceptions import (
    AuctionAlreadySettled,
    AuctionError,
    AuctionNotOpen,
    AuctionPriceNotMet,
    ConfigurationError,
    NothingToAuction,
    ReentrantCall,
    TransferFailed,
    Unauthorized,
)
from ttg.ledger import Ledger
from ttg.tokens import Token


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ADMIN = to_checksum_address("0x" + "ad" * 20)
GOVERNOR = to_checksum_address("0x" + "90" * 20)
VAULT = to_checksum_address("0x" + "95" * 20)
CASH = to_checksum_address("0x" + "70" * 20)
PAYMENT = to_checksum_address("0x" + "71" * 20)
ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b0" * 20)
CAROL = to_checksum_address("0x" + "ca" * 20)
BUYER = to_checksum_address("0x" + "be" * 20)

START_PRICE = 100
FLOOR_PRICE = 10
DECAY = 1_000
ROUND = 2_000


def make_vault(start_price=START_PRICE, floor_price=FLOOR_PRICE, buyer_funds=1_000_000) -> AuctionVault:
    ledger = Ledger(timestamp=10_000)
    cash = Token(ledger, CASH, "Cash", "CASH", admin=ADMIN)
    payment = Token(ledger, PAYMENT, "Zero", "ZERO", decimals=6, admin=ADMIN)
    for token in (cash, payment):
        token.add_minter(ADMIN, ADMIN)
    payment.mint(ADMIN, BUYER, buyer_funds)

    vault = AuctionVault(
        ledger,
        VAULT,
        governor=GOVERNOR,
        cash_token=cash,
        payment_token=payment,
        start_price=start_price,
        floor_price=floor_price,
        decay_duration=DECAY,
        round_duration=ROUND,
    )
    payment.approve(BUYER, VAULT, buyer_funds)
    return vault


def deposit(vault: AuctionVault, amount: int, participants=None) -> None:
    """Mirror the governor: record the deposit, then move the cash in."""
    vault.record_deposit(GOVERNOR, amount, participants or {})
    vault.cash_token.mint(ADMIN, vault.address, amount)


# ══════════════════════════════════════════════════════════════════════
#  CONSTRUCTION & DEPOSITS
# ══════════════════════════════════════════════════════════════════════

class TestVaultSetup:

    def test_floor_above_start_rejected(self):
        with pytest.raises(ConfigurationError):
            make_vault(start_price=10, floor_price=20)

    def test_zero_floor_rejected(self):
        with pytest.raises(ConfigurationError):
            make_vault(floor_price=0)

    def test_initial_state(self):
        vault = make_vault()
        assert vault.current_round is None
        assert vault.pending_inventory == 0
        assert vault.undistributed == 0


class TestDeposits:

    def test_governor_only(self):
        vault = make_vault()
        with pytest.raises(Unauthorized):
            vault.record_deposit(ALICE, 10, {ALICE: 1})
        assert vault.pending_inventory == 0

    def test_weights_accumulate(self):
        vault = make_vault()
        deposit(vault, 10, {ALICE: 3})
        deposit(vault, 5, {ALICE: 1, BOB: 2})
        assert vault.pending_inventory == 15
        vault.open_round(BUYER)
        assert vault.current_round.participants == {ALICE: 4, BOB: 2}

    def test_zero_weights_ignored(self):
        vault = make_vault()
        deposit(vault, 10, {ALICE: 0, BOB: 1})
        vault.open_round(BUYER)
        assert vault.current_round.participants == {BOB: 1}

    def test_negative_amount_rejected(self):
        vault = make_vault()
        with pytest.raises(AuctionError):
            vault.record_deposit(GOVERNOR, -1, {})


# ══════════════════════════════════════════════════════════════════════
#  ROUNDS & PRICING
# ══════════════════════════════════════════════════════════════════════

class TestRounds:

    def test_nothing_to_auction(self):
        vault = make_vault()
        with pytest.raises(NothingToAuction):
            vault.open_round(BUYER)

    def test_open_round_takes_all_inventory(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        round_id = vault.open_round(BUYER)
        assert round_id == 1
        assert vault.current_round.inventory == 4
        assert vault.pending_inventory == 0

    def test_cannot_open_while_live(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        deposit(vault, 1, {BOB: 1})
        with pytest.raises(AuctionError, match="still open"):
            vault.open_round(BUYER)

    def test_lapsed_round_rolls_into_next(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        deposit(vault, 2, {BOB: 1})
        vault.ledger.advance_time(ROUND)

        with pytest.raises(AuctionNotOpen):
            vault.settle(BUYER, 10 ** 9)

        vault.open_round(BUYER)
        assert vault.get_round(1).status == AuctionRoundStatus.EXPIRED
        assert vault.current_round.id == 2
        assert vault.current_round.inventory == 6
        assert vault.current_round.participants == {ALICE: 1, BOB: 1}
        assert len(vault.ledger.events("AuctionRoundExpired")) == 1

    def test_expire_round(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        with pytest.raises(AuctionError, match="still open"):
            vault.expire_round(BUYER)
        vault.ledger.advance_time(ROUND)
        assert vault.expire_round(BUYER) == 1
        assert vault.pending_inventory == 4
        with pytest.raises(AuctionNotOpen):
            vault.expire_round(BUYER)

    def test_unknown_round(self):
        vault = make_vault()
        with pytest.raises(AuctionError, match="not found"):
            vault.get_round(7)


class TestPricing:

    def test_price_curve_endpoints(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        assert vault.current_price() == START_PRICE * 4
        vault.ledger.advance_time(DECAY // 2)
        assert vault.current_price() == (START_PRICE - (START_PRICE - FLOOR_PRICE) // 2) * 4
        vault.ledger.advance_time(DECAY)
        assert vault.current_price() == FLOOR_PRICE * 4

    def test_price_never_increases(self):
        auction_round = AuctionRound(
            id=1, inventory=7, start_price=997, floor_price=13,
            decay_duration=333, round_duration=1_000, started_at=0,
        )
        prices = [auction_round.price(t) for t in range(0, 1_000, 7)]
        assert prices == sorted(prices, reverse=True)
        assert prices[-1] == 13 * 7

    def test_price_before_start_is_start_price(self):
        auction_round = AuctionRound(
            id=1, inventory=1, start_price=100, floor_price=10,
            decay_duration=100, round_duration=200, started_at=50,
        )
        assert auction_round.unit_price(0) == 100

    def test_no_live_round(self):
        vault = make_vault()
        with pytest.raises(AuctionNotOpen):
            vault.current_price()


# ══════════════════════════════════════════════════════════════════════
#  SETTLEMENT & CLAIMS
# ══════════════════════════════════════════════════════════════════════

class TestSettlement:

    def test_settle_transfers_everything(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 3, BOB: 1})
        vault.open_round(BUYER)
        price = vault.settle(BUYER, 400)

        assert price == 400
        assert vault.cash_token.balance_of(BUYER) == 4
        assert vault.cash_token.balance_of(VAULT) == 0
        assert vault.payment_token.balance_of(VAULT) == 400
        assert vault.claimable(ALICE) == 300
        assert vault.claimable(BOB) == 100
        auction_round = vault.get_round(1)
        assert auction_round.status == AuctionRoundStatus.SETTLED
        assert auction_round.buyer == BUYER
        assert auction_round.price_paid == 400

    def test_price_not_met(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        with pytest.raises(AuctionPriceNotMet) as exc:
            vault.settle(BUYER, 399)
        assert exc.value.price == 400
        assert vault.current_round.status == AuctionRoundStatus.OPEN
        assert vault.cash_token.balance_of(BUYER) == 0

    def test_late_buyer_pays_less(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        vault.ledger.advance_time(DECAY)
        assert vault.settle(BUYER, 400) == FLOOR_PRICE * 4

    def test_second_settle_rejected(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        vault.settle(BUYER, 400)
        with pytest.raises(AuctionAlreadySettled):
            vault.settle(BUYER, 400)

    def test_rounding_dust_carried_forward(self):
        vault = make_vault(start_price=100, floor_price=100)
        weights = {ALICE: 1, BOB: 1, CAROL: 1}
        deposit(vault, 1, weights)
        vault.open_round(BUYER)
        vault.settle(BUYER, 100)
        assert [vault.claimable(a) for a in (ALICE, BOB, CAROL)] == [33, 33, 33]
        assert vault.undistributed == 1

        deposit(vault, 1, weights)
        vault.open_round(BUYER)
        vault.settle(BUYER, 100)
        assert [vault.claimable(a) for a in (ALICE, BOB, CAROL)] == [66, 66, 66]
        assert vault.undistributed == 2

    def test_no_participants_keeps_proceeds_undistributed(self):
        vault = make_vault()
        deposit(vault, 2, {})
        vault.open_round(BUYER)
        vault.settle(BUYER, 200)
        assert vault.undistributed == 200

    def test_payment_failure_rolls_back(self, monkeypatch):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        monkeypatch.setattr(vault.payment_token, "transfer_from", lambda *args: False)
        with pytest.raises(TransferFailed):
            vault.settle(BUYER, 400)
        assert vault.current_round.status == AuctionRoundStatus.OPEN
        assert vault.claimable(ALICE) == 0
        assert vault.ledger.events("AuctionRoundSettled") == []

    def test_reentrant_settle_rejected(self, monkeypatch):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        original = vault.payment_token.transfer_from

        def reentrant_transfer_from(spender, sender, recipient, amount):
            vault.settle(BUYER, 10 ** 9)
            return original(spender, sender, recipient, amount)

        monkeypatch.setattr(vault.payment_token, "transfer_from", reentrant_transfer_from)
        with pytest.raises(ReentrantCall):
            vault.settle(BUYER, 400)
        assert vault.current_round.status == AuctionRoundStatus.OPEN
        assert vault.cash_token.balance_of(VAULT) == 4


class TestClaims:

    def test_claim_pays_out_once(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 3, BOB: 1})
        vault.open_round(BUYER)
        vault.settle(BUYER, 400)

        assert vault.claim(ALICE) == 300
        assert vault.payment_token.balance_of(ALICE) == 300
        assert vault.claimable(ALICE) == 0
        with pytest.raises(AuctionError, match="Nothing to claim"):
            vault.claim(ALICE)

    def test_claim_without_credit(self):
        vault = make_vault()
        with pytest.raises(AuctionError):
            vault.claim(CAROL)

    def test_to_dict(self):
        vault = make_vault()
        deposit(vault, 4, {ALICE: 1})
        vault.open_round(BUYER)
        d = vault.to_dict()
        assert d["rounds"][1]["currentPrice"] == 400
        assert d["paymentToken"] == PAYMENT
