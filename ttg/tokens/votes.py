"""
Voting Token

ERC20-style token with checkpointed, delegable voting power. Balances count
toward the holder's own voting power until the holder delegates elsewhere.

Voting power and total supply are checkpointed by timestamp so governance
can read them at a past timepoint (flash-loan resistant quorum):

    get_past_votes(account, t)      → power held at the end of time t
    get_past_total_supply(t)        → supply at the end of time t

Both raise FutureLookup unless t is strictly in the past.
"""

from bisect import bisect_right
from typing import Dict, List, Tuple

from ..constants import DELEGATION_TYPE
from ..crypto.address import to_checksum_address
from ..crypto.eip712 import ERC712, hash_struct
from ..exceptions import FutureLookup, SignatureExpired
from ..ledger import atomic
from ..logger import get_logger
from .erc20 import Token

logger = get_logger(__name__)


DELEGATE_CHANGED_EVENT = "DelegateChanged(address,address,address)"
DELEGATE_VOTES_CHANGED_EVENT = "DelegateVotesChanged(address,uint256,uint256)"

# (timestamp, value)
Checkpoint = Tuple[int, int]


def _lookup(checkpoints: List[Checkpoint], timepoint: int) -> int:
    index = bisect_right(checkpoints, timepoint, key=lambda c: c[0])
    return checkpoints[index - 1][1] if index else 0


class VotingToken(Token):
    """
    Token whose balances carry governance weight.

    Used for both the vote ("power") and the value ("zero") track.
    """

    _snapshot_fields = Token._snapshot_fields + (
        "_delegates",
        "_checkpoints",
        "_supply_checkpoints",
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._delegates: Dict[str, str] = {}
        self._checkpoints: Dict[str, List[Checkpoint]] = {}
        self._supply_checkpoints: List[Checkpoint] = []

    # ── Views ─────────────────────────────────────────────────────────

    def delegates(self, account: str) -> str:
        """Current delegatee of *account* (the account itself by default)."""
        account = to_checksum_address(account)
        return self._delegates.get(account, account)

    def get_votes(self, account: str) -> int:
        checkpoints = self._checkpoints.get(to_checksum_address(account))
        return checkpoints[-1][1] if checkpoints else 0

    def get_past_votes(self, account: str, timepoint: int) -> int:
        self._require_past(timepoint)
        return _lookup(self._checkpoints.get(to_checksum_address(account), []), timepoint)

    def get_past_total_supply(self, timepoint: int) -> int:
        self._require_past(timepoint)
        return _lookup(self._supply_checkpoints, timepoint)

    def _require_past(self, timepoint: int) -> None:
        if timepoint >= self.now:
            raise FutureLookup(f"Timepoint {timepoint} is not before current time {self.now}")

    # ── Checkpoint bookkeeping ────────────────────────────────────────

    def _write(self, checkpoints: List[Checkpoint], delta: int) -> Tuple[int, int]:
        old = checkpoints[-1][1] if checkpoints else 0
        new = old + delta
        if checkpoints and checkpoints[-1][0] == self.now:
            checkpoints[-1] = (self.now, new)
        else:
            checkpoints.append((self.now, new))
        return old, new

    def _move_voting_power(self, source: str, destination: str, amount: int) -> None:
        if source == destination or amount == 0:
            return
        if source:
            old, new = self._write(self._checkpoints.setdefault(source, []), -amount)
            self._emit(
                "DelegateVotesChanged", DELEGATE_VOTES_CHANGED_EVENT,
                delegate=source, previous_balance=old, new_balance=new,
            )
        if destination:
            old, new = self._write(self._checkpoints.setdefault(destination, []), amount)
            self._emit(
                "DelegateVotesChanged", DELEGATE_VOTES_CHANGED_EVENT,
                delegate=destination, previous_balance=old, new_balance=new,
            )

    def _update(self, sender: str, recipient: str, amount: int) -> None:
        super()._update(sender, recipient, amount)
        if not sender:
            self._write(self._supply_checkpoints, amount)
        if not recipient:
            self._write(self._supply_checkpoints, -amount)
        self._move_voting_power(
            self.delegates(sender) if sender else "",
            self.delegates(recipient) if recipient else "",
            amount,
        )

    def _delegate(self, account: str, delegatee: str) -> None:
        previous = self.delegates(account)
        self._delegates[account] = delegatee
        self._emit(
            "DelegateChanged", DELEGATE_CHANGED_EVENT,
            delegator=account, from_delegate=previous, to_delegate=delegatee,
        )
        self._move_voting_power(previous, delegatee, self._balances.get(account, 0))
        logger.debug(f"Delegation: {account} → {delegatee} ({self.symbol})")

    # ── Delegation ────────────────────────────────────────────────────

    @atomic
    def delegate(self, caller: str, delegatee: str) -> None:
        self._delegate(to_checksum_address(caller), to_checksum_address(delegatee))

    @atomic
    def delegate_by_sig(
        self,
        delegatee: str,
        nonce: int,
        expiry: int,
        v: int,
        r: int,
        s: int,
    ) -> str:
        """
        Delegate on behalf of whoever signed the Delegation struct.

        Returns:
            The delegator (recovered signer).
        """
        if self.now > expiry:
            raise SignatureExpired(expiry, self.now)

        delegatee = to_checksum_address(delegatee)
        struct_hash = self.delegation_struct_hash(delegatee, nonce, expiry)
        signer = ERC712.recover(self._erc712.digest(struct_hash), v, r, s)
        self._erc712.verify_and_consume(signer, struct_hash, nonce, expiry, self.now, v, r, s)
        self._delegate(signer, delegatee)
        return signer

    @staticmethod
    def delegation_struct_hash(delegatee: str, nonce: int, expiry: int) -> bytes:
        return hash_struct(
            DELEGATION_TYPE,
            ["address", "uint256", "uint256"],
            [to_checksum_address(delegatee), nonce, expiry],
        )

    def delegation_digest(self, delegatee: str, nonce: int, expiry: int) -> bytes:
        return self._erc712.digest(self.delegation_struct_hash(delegatee, nonce, expiry))

    def __repr__(self) -> str:
        return f"<VotingToken {self.symbol} supply={self._total_supply}>"
