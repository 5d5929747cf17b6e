"""
Fungible Token Ledger

Minimal ERC20-style token used as the protocol's cash token and as the base
of the voting tokens:

  - balanceOf / allowance / totalSupply / decimals
  - transfer / approve / transferFrom / increaseAllowance / decreaseAllowance
  - minter-gated mint
  - ERC712 permit (signed approvals)

The first argument of every mutating call is the transaction sender.
"""

from typing import Any, Dict, Set, Tuple

from ..constants import DEFAULT_TOKEN_DECIMALS, MAX_TOKEN_DECIMALS, PERMIT_TYPE, ZERO_ADDRESS
from ..crypto.address import is_zero_address, to_checksum_address
from ..crypto.eip712 import ERC712, hash_struct
from ..exceptions import (
    InsufficientAllowance,
    InsufficientBalance,
    TokenError,
    Unauthorized,
)
from ..ledger import Ledger, LedgerParticipant, atomic
from ..logger import get_logger

logger = get_logger(__name__)


TRANSFER_EVENT = "Transfer(address,address,uint256)"
APPROVAL_EVENT = "Approval(address,address,uint256)"


class Token(LedgerParticipant):
    """
    ERC20-style token.

    Mirrors ERC-20 semantics:
        - balance_of(address) → int
        - transfer(sender, recipient, amount) → True
        - approve(owner, spender, amount) → True
        - transfer_from(spender, sender, recipient, amount) → True
        - total_supply → int
    """

    _snapshot_fields = ("_balances", "_allowances", "_total_supply", "_minters", "_erc712")

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        name: str,
        symbol: str,
        decimals: int = DEFAULT_TOKEN_DECIMALS,
        admin: str = "",
    ):
        if not name:
            raise TokenError("Token name cannot be empty")
        if not symbol:
            raise TokenError("Token symbol cannot be empty")
        if decimals < 0 or decimals > MAX_TOKEN_DECIMALS:
            raise TokenError(f"Decimals must be 0-{MAX_TOKEN_DECIMALS}, got {decimals}")

        super().__init__(ledger, address)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.admin = to_checksum_address(admin) if admin else None

        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}  # (owner, spender)
        self._total_supply = 0
        self._minters: Set[str] = set()
        self._erc712 = ERC712(name, ledger.chain_id, self.address)

        logger.info(f"Token deployed: {symbol} ({name}) at {self.address}")

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(to_checksum_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(
            (to_checksum_address(owner), to_checksum_address(spender)), 0
        )

    @property
    def domain_separator(self) -> bytes:
        return self._erc712.domain_separator

    def nonces(self, account: str) -> int:
        return self._erc712.nonces(account)

    def is_minter(self, account: str) -> bool:
        return to_checksum_address(account) in self._minters

    # ── Internal accounting ───────────────────────────────────────────

    def _update(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move *amount* from *sender* to *recipient*.

        An empty *sender* mints; an empty *recipient* burns.
        """
        if sender:
            balance = self._balances.get(sender, 0)
            if balance < amount:
                raise InsufficientBalance(
                    f"{sender} balance {balance} < amount {amount} {self.symbol}"
                )
            self._balances[sender] = balance - amount
        else:
            self._total_supply += amount

        if recipient:
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
        else:
            self._total_supply -= amount

    def _approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(owner, spender)] = amount
        self._emit("Approval", APPROVAL_EVENT, owner=owner, spender=spender, value=amount)

    @staticmethod
    def _require_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise TokenError(f"Amount must be a non-negative integer, got {amount!r}")

    @staticmethod
    def _require_recipient(recipient: str) -> str:
        recipient = to_checksum_address(recipient)
        if is_zero_address(recipient):
            raise TokenError("Cannot transfer to the zero address")
        return recipient

    # ── Core ERC-20 operations ────────────────────────────────────────

    @atomic
    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        self._require_amount(amount)
        sender = to_checksum_address(sender)
        recipient = self._require_recipient(recipient)

        self._update(sender, recipient, amount)
        self._emit("Transfer", TRANSFER_EVENT, sender=sender, recipient=recipient, value=amount)
        logger.debug(f"Transfer: {sender} → {recipient} {amount} {self.symbol}")
        return True

    @atomic
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self._require_amount(amount)
        self._approve(to_checksum_address(owner), to_checksum_address(spender), amount)
        return True

    @atomic
    def transfer_from(self, spender: str, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer on behalf of *sender* using *spender*'s allowance.
        """
        self._require_amount(amount)
        spender = to_checksum_address(spender)
        sender = to_checksum_address(sender)
        recipient = self._require_recipient(recipient)

        allowed = self._allowances.get((sender, spender), 0)
        if allowed < amount:
            raise InsufficientAllowance(
                f"Allowance {allowed} < transfer amount {amount} {self.symbol}"
            )

        self._allowances[(sender, spender)] = allowed - amount
        self._update(sender, recipient, amount)
        self._emit("Transfer", TRANSFER_EVENT, sender=sender, recipient=recipient, value=amount)
        logger.debug(
            f"transferFrom: spender={spender} {sender} → {recipient} {amount} {self.symbol}"
        )
        return True

    @atomic
    def increase_allowance(self, owner: str, spender: str, added: int) -> bool:
        self._require_amount(added)
        owner, spender = to_checksum_address(owner), to_checksum_address(spender)
        self._approve(owner, spender, self._allowances.get((owner, spender), 0) + added)
        return True

    @atomic
    def decrease_allowance(self, owner: str, spender: str, subtracted: int) -> bool:
        self._require_amount(subtracted)
        owner, spender = to_checksum_address(owner), to_checksum_address(spender)
        current = self._allowances.get((owner, spender), 0)
        if current < subtracted:
            raise InsufficientAllowance(
                f"Cannot decrease allowance {current} by {subtracted} {self.symbol}"
            )
        self._approve(owner, spender, current - subtracted)
        return True

    # ── Signed approvals ──────────────────────────────────────────────

    @atomic
    def permit(
        self,
        owner: str,
        spender: str,
        value: int,
        nonce: int,
        deadline: int,
        v: int,
        r: int,
        s: int,
    ) -> None:
        """
        ERC712-authorized approval.

        *nonce* must equal the owner's current nonce; a resubmitted permit
        fails with ReusedNonce.
        """
        self._require_amount(value)
        owner, spender = to_checksum_address(owner), to_checksum_address(spender)
        self._erc712.verify_and_consume(
            owner,
            self.permit_struct_hash(owner, spender, value, nonce, deadline),
            nonce,
            deadline,
            self.now,
            v, r, s,
        )
        self._approve(owner, spender, value)

    @staticmethod
    def permit_struct_hash(owner: str, spender: str, value: int, nonce: int, deadline: int) -> bytes:
        return hash_struct(
            PERMIT_TYPE,
            ["address", "address", "uint256", "uint256", "uint256"],
            [to_checksum_address(owner), to_checksum_address(spender), value, nonce, deadline],
        )

    def permit_digest(self, owner: str, spender: str, value: int, nonce: int, deadline: int) -> bytes:
        return self._erc712.digest(self.permit_struct_hash(owner, spender, value, nonce, deadline))

    # ── Minting ───────────────────────────────────────────────────────

    @atomic
    def add_minter(self, caller: str, minter: str) -> None:
        if self.admin is None or to_checksum_address(caller) != self.admin:
            raise Unauthorized(caller, f"add minters to {self.symbol}")
        self._minters.add(to_checksum_address(minter))
        logger.info(f"Minter added: {minter} for {self.symbol}")

    @atomic
    def mint(self, caller: str, recipient: str, amount: int) -> bool:
        self._require_amount(amount)
        if to_checksum_address(caller) not in self._minters:
            raise Unauthorized(caller, f"mint {self.symbol}")
        recipient = self._require_recipient(recipient)

        self._update("", recipient, amount)
        self._emit(
            "Transfer", TRANSFER_EVENT,
            sender=ZERO_ADDRESS, recipient=recipient, value=amount,
        )
        logger.debug(f"Mint: {amount} {self.symbol} → {recipient}")
        return True

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "totalSupply": self._total_supply,
            "holders": len([b for b in self._balances.values() if b > 0]),
        }

    def __repr__(self) -> str:
        return f"<Token {self.symbol} supply={self._total_supply}>"
