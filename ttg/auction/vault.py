"""
Auction Vault

Escrows fees forfeited by defeated and expired proposals and sells them in
sequential descending-price ("priceless") rounds:

  - the whole round inventory goes to the first buyer paying the live price
  - the unit price falls linearly from start_price to floor_price over
    decay_duration and never increases
  - an unsold round expires after round_duration; its inventory and
    participant weights roll into the next round
  - proceeds are credited pro rata to the voters whose fees funded the
    round and withdrawn with claim()

Settlement finalizes all accounting before any token moves.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional

from ..constants import (
    DEFAULT_AUCTION_DECAY_DURATION,
    DEFAULT_AUCTION_FLOOR_PRICE,
    DEFAULT_AUCTION_ROUND_DURATION,
    DEFAULT_AUCTION_START_PRICE,
)
from ..crypto.address import to_checksum_address
from ..exceptions import (
    AuctionAlreadySettled,
    AuctionError,
    AuctionNotOpen,
    AuctionPriceNotMet,
    ConfigurationError,
    NothingToAuction,
    TransferFailed,
    Unauthorized,
)
from ..ledger import Ledger, LedgerParticipant, atomic, non_reentrant
from ..logger import get_logger

logger = get_logger(__name__)


DEPOSIT_RECORDED_EVENT = "DepositRecorded(uint256,uint256)"
ROUND_OPENED_EVENT = "AuctionRoundOpened(uint256,uint256,uint256)"
ROUND_SETTLED_EVENT = "AuctionRoundSettled(uint256,address,uint256)"
ROUND_EXPIRED_EVENT = "AuctionRoundExpired(uint256,uint256)"
CLAIMED_EVENT = "Claimed(address,uint256)"


# ══════════════════════════════════════════════════════════════════════
#  ROUNDS
# ══════════════════════════════════════════════════════════════════════

class AuctionRoundStatus(IntEnum):
    OPEN = 0
    SETTLED = 1
    EXPIRED = 2


@dataclass
class AuctionRound:
    """
    One descending-price sale of the vault's cash inventory.

    Prices are in payment-token base units per cash-token base unit.
    """
    id: int
    inventory: int
    start_price: int
    floor_price: int
    decay_duration: int
    round_duration: int
    started_at: int
    participants: Dict[str, int] = field(default_factory=dict)
    status: AuctionRoundStatus = AuctionRoundStatus.OPEN
    buyer: Optional[str] = None
    price_paid: int = 0
    closed_at: Optional[int] = None

    @property
    def ends_at(self) -> int:
        return self.started_at + self.round_duration

    def is_lapsed(self, now: int) -> bool:
        return now >= self.ends_at

    def unit_price(self, now: int) -> int:
        elapsed = max(0, now - self.started_at)
        if elapsed >= self.decay_duration:
            return self.floor_price
        drop = (self.start_price - self.floor_price) * elapsed // self.decay_duration
        return self.start_price - drop

    def price(self, now: int) -> int:
        return self.unit_price(now) * self.inventory

    def to_dict(self, now: Optional[int] = None) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "inventory": self.inventory,
            "startPrice": self.start_price,
            "floorPrice": self.floor_price,
            "decayDuration": self.decay_duration,
            "startedAt": self.started_at,
            "endsAt": self.ends_at,
            "participants": len(self.participants),
            "status": self.status.name,
            "buyer": self.buyer,
            "pricePaid": self.price_paid,
            "closedAt": self.closed_at,
        }
        if now is not None and self.status == AuctionRoundStatus.OPEN and not self.is_lapsed(now):
            result["currentPrice"] = self.price(now)
        return result

    def __repr__(self) -> str:
        return f"<AuctionRound #{self.id} inventory={self.inventory} status={self.status.name}>"


# ══════════════════════════════════════════════════════════════════════
#  VAULT
# ══════════════════════════════════════════════════════════════════════

class AuctionVault(LedgerParticipant):
    """
    Holds forfeited cash and auctions it for the payment token.
    """

    _snapshot_fields = (
        "_pending_inventory",
        "_pending_weights",
        "_rounds",
        "_round_count",
        "_undistributed",
        "_claimable",
    )

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        governor: str,
        cash_token,
        payment_token,
        start_price: int = DEFAULT_AUCTION_START_PRICE,
        floor_price: int = DEFAULT_AUCTION_FLOOR_PRICE,
        decay_duration: int = DEFAULT_AUCTION_DECAY_DURATION,
        round_duration: int = DEFAULT_AUCTION_ROUND_DURATION,
    ):
        if not 0 < floor_price <= start_price:
            raise ConfigurationError(
                f"Auction prices must satisfy 0 < floor ({floor_price}) <= start ({start_price})"
            )
        if decay_duration < 1 or round_duration < 1:
            raise ConfigurationError("Auction durations must be >= 1")
        super().__init__(ledger, address)

        self.governor = to_checksum_address(governor)
        self.cash_token = cash_token
        self.payment_token = payment_token
        self.start_price = start_price
        self.floor_price = floor_price
        self.decay_duration = decay_duration
        self.round_duration = round_duration

        self._pending_inventory = 0
        self._pending_weights: Dict[str, int] = {}
        self._rounds: Dict[int, AuctionRound] = {}
        self._round_count = 0
        self._undistributed = 0
        self._claimable: Dict[str, int] = {}

        logger.info(
            f"AuctionVault deployed at {self.address} "
            f"(price {start_price} → {floor_price} over {decay_duration}s)"
        )

    # ── Views ─────────────────────────────────────────────────────────

    @property
    def current_round(self) -> Optional[AuctionRound]:
        return self._rounds.get(self._round_count)

    def get_round(self, round_id: int) -> AuctionRound:
        auction_round = self._rounds.get(round_id)
        if auction_round is None:
            raise AuctionError(f"Round #{round_id} not found")
        return auction_round

    @property
    def pending_inventory(self) -> int:
        return self._pending_inventory

    @property
    def undistributed(self) -> int:
        return self._undistributed

    def claimable(self, account: str) -> int:
        return self._claimable.get(to_checksum_address(account), 0)

    def _live_round(self, round_id: Optional[int] = None) -> AuctionRound:
        auction_round = self.current_round if round_id is None else self.get_round(round_id)
        if auction_round is None:
            raise AuctionNotOpen("No auction round has been opened")
        if auction_round.status == AuctionRoundStatus.SETTLED:
            raise AuctionAlreadySettled(f"Round #{auction_round.id} already settled")
        if auction_round.status == AuctionRoundStatus.EXPIRED or auction_round.is_lapsed(self.now):
            raise AuctionNotOpen(f"Round #{auction_round.id} expired at {auction_round.ends_at}")
        return auction_round

    def current_price(self, round_id: Optional[int] = None) -> int:
        """Price of the whole inventory of a live round at the current time."""
        return self._live_round(round_id).price(self.now)

    # ── Deposits ──────────────────────────────────────────────────────

    @atomic
    def record_deposit(self, caller: str, amount: int, participants: Mapping[str, int]) -> None:
        """
        Account for forfeited cash the governor is about to transfer in.

        *participants* maps voter → weight; weights accumulate across deposits.
        """
        if to_checksum_address(caller) != self.governor:
            raise Unauthorized(caller, "record auction deposits")
        if amount < 0:
            raise AuctionError(f"Deposit amount must be >= 0, got {amount}")

        self._pending_inventory += amount
        for account, weight in participants.items():
            if weight > 0:
                account = to_checksum_address(account)
                self._pending_weights[account] = self._pending_weights.get(account, 0) + weight

        self._emit(
            "DepositRecorded", DEPOSIT_RECORDED_EVENT,
            amount=amount, participants=len(participants),
        )
        logger.debug(f"AuctionVault: deposit {amount} ({len(participants)} participants)")

    # ── Round lifecycle ───────────────────────────────────────────────

    def _expire(self, auction_round: AuctionRound) -> None:
        auction_round.status = AuctionRoundStatus.EXPIRED
        auction_round.closed_at = self.now
        self._pending_inventory += auction_round.inventory
        for account, weight in auction_round.participants.items():
            self._pending_weights[account] = self._pending_weights.get(account, 0) + weight

        self._emit(
            "AuctionRoundExpired", ROUND_EXPIRED_EVENT,
            round_id=auction_round.id, inventory=auction_round.inventory,
        )
        logger.info(
            f"Round #{auction_round.id} EXPIRED unsold; "
            f"{auction_round.inventory} rolled into the next round"
        )

    @atomic
    def open_round(self, caller: str) -> int:
        """
        Start a round selling everything escrowed so far.

        A lapsed round is archived first. Returns the new round id.
        """
        current = self.current_round
        if current is not None and current.status == AuctionRoundStatus.OPEN:
            if not current.is_lapsed(self.now):
                raise AuctionError(f"Round #{current.id} is still open until {current.ends_at}")
            self._expire(current)

        if self._pending_inventory == 0:
            raise NothingToAuction("Vault holds no inventory to auction")

        self._round_count += 1
        auction_round = AuctionRound(
            id=self._round_count,
            inventory=self._pending_inventory,
            start_price=self.start_price,
            floor_price=self.floor_price,
            decay_duration=self.decay_duration,
            round_duration=self.round_duration,
            started_at=self.now,
            participants=self._pending_weights,
        )
        self._rounds[auction_round.id] = auction_round
        self._pending_inventory = 0
        self._pending_weights = {}

        self._emit(
            "AuctionRoundOpened", ROUND_OPENED_EVENT,
            round_id=auction_round.id, inventory=auction_round.inventory,
            start_price=auction_round.start_price,
        )
        logger.info(
            f"Round #{auction_round.id} opened by {caller}: inventory={auction_round.inventory}, "
            f"price {auction_round.price(self.now)} → "
            f"{auction_round.floor_price * auction_round.inventory}"
        )
        return auction_round.id

    @atomic
    def expire_round(self, caller: str) -> int:
        """Archive the lapsed current round. Returns its id."""
        current = self.current_round
        if current is None or current.status != AuctionRoundStatus.OPEN:
            raise AuctionNotOpen("No open auction round")
        if not current.is_lapsed(self.now):
            raise AuctionError(f"Round #{current.id} is still open until {current.ends_at}")
        self._expire(current)
        return current.id

    # ── Settlement ────────────────────────────────────────────────────

    def _distribute(self, amount: int, weights: Mapping[str, int]) -> None:
        total = sum(weights.values())
        if total == 0:
            self._undistributed = amount
            return
        distributed = 0
        for account in sorted(weights):
            share = amount * weights[account] // total
            if share:
                self._claimable[account] = self._claimable.get(account, 0) + share
                distributed += share
        self._undistributed = amount - distributed

    @atomic
    @non_reentrant
    def settle(self, buyer: str, max_payment: int) -> int:
        """
        Buy the whole inventory of the live round at the current price.

        Returns:
            The price paid.
        """
        buyer = to_checksum_address(buyer)
        auction_round = self._live_round()
        price = auction_round.price(self.now)
        if max_payment < price:
            raise AuctionPriceNotMet(max_payment, price)

        # Effects
        auction_round.status = AuctionRoundStatus.SETTLED
        auction_round.buyer = buyer
        auction_round.price_paid = price
        auction_round.closed_at = self.now
        self._distribute(price + self._undistributed, auction_round.participants)
        self._emit(
            "AuctionRoundSettled", ROUND_SETTLED_EVENT,
            round_id=auction_round.id, buyer=buyer, price=price,
        )

        # Interactions
        if not self.payment_token.transfer_from(self.address, buyer, self.address, price):
            raise TransferFailed(f"Payment of {price} from {buyer} failed")
        if not self.cash_token.transfer(self.address, buyer, auction_round.inventory):
            raise TransferFailed(f"Release of {auction_round.inventory} inventory to {buyer} failed")

        logger.info(
            f"Round #{auction_round.id} SETTLED: {buyer} paid {price} for "
            f"{auction_round.inventory} ({len(auction_round.participants)} participants credited)"
        )
        return price

    @atomic
    def claim(self, account: str) -> int:
        """Withdraw *account*'s credited proceeds. Returns the amount paid out."""
        account = to_checksum_address(account)
        amount = self._claimable.pop(account, 0)
        if amount == 0:
            raise AuctionError(f"Nothing to claim for {account}")

        self._emit("Claimed", CLAIMED_EVENT, account=account, amount=amount)
        if not self.payment_token.transfer(self.address, account, amount):
            raise TransferFailed(f"Claim payout of {amount} to {account} failed")
        logger.debug(f"AuctionVault: {account} claimed {amount}")
        return amount

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "governor": self.governor,
            "cashToken": self.cash_token.address,
            "paymentToken": self.payment_token.address,
            "pendingInventory": self._pending_inventory,
            "undistributed": self._undistributed,
            "claimants": len(self._claimable),
            "rounds": {rid: r.to_dict(self.now) for rid, r in self._rounds.items()},
        }

    def __repr__(self) -> str:
        return f"<AuctionVault at {self.address} rounds={self._round_count}>"
