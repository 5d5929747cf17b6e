"""
Governance Proposals

Defines the registry mutations a proposal can carry, the proposal
lifecycle states, and the Proposal record that tracks one proposal from
creation to resolution.

A proposal's state is derived from the clock and its tallies until it is
resolved; resolution stores the terminal status:

    PENDING ──► ACTIVE ──► SUCCEEDED ──resolve──► EXECUTED
                      └──► DEFEATED  ──resolve──► DEFEATED
    (unresolved past the resolution deadline)     EXPIRED
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..crypto.address import InvalidAddressError, is_zero_address, to_checksum_address
from ..crypto.encoding import bytes32_to_str, is_zero_bytes32, to_bytes32
from ..exceptions import InvalidMutation, ProposalLifecycleError
from ..logger import get_logger
from .voting import Track, TrackTally, VoteReceipt, dual_quorum_passed

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  MUTATIONS
# ══════════════════════════════════════════════════════════════════════

def _bytes32_field(value: Any, what: str) -> bytes:
    try:
        return to_bytes32(value)
    except (TypeError, ValueError) as e:
        raise InvalidMutation(f"Invalid {what}: {e}") from e


@dataclass(frozen=True)
class ListMutation:
    """Add *account* to, or remove it from, the list *list_name*."""
    list_name: bytes
    account: str
    add: bool = True

    def validated(self) -> "ListMutation":
        name = _bytes32_field(self.list_name, "list name")
        if is_zero_bytes32(name):
            raise InvalidMutation("List name cannot be empty")
        try:
            account = to_checksum_address(self.account)
        except InvalidAddressError as e:
            raise InvalidMutation(str(e)) from e
        if is_zero_address(account):
            raise InvalidMutation("Cannot list the zero address")
        if not isinstance(self.add, bool):
            raise InvalidMutation(f"List mutation direction must be a bool, got {self.add!r}")
        return ListMutation(name, account, self.add)

    def apply(self, registrar, caller: str) -> None:
        if self.add:
            registrar.add_to_list(caller, self.list_name, self.account)
        else:
            registrar.remove_from_list(caller, self.list_name, self.account)

    def describe(self) -> str:
        verb = "add" if self.add else "remove"
        return f"{verb} {self.account} {'to' if self.add else 'from'} {bytes32_to_str(self.list_name)!r}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "list",
            "list": "0x" + self.list_name.hex(),
            "account": self.account,
            "add": self.add,
        }


@dataclass(frozen=True)
class ConfigMutation:
    """Set config *key* to *value* (last write wins)."""
    key: bytes
    value: bytes

    def validated(self) -> "ConfigMutation":
        key = _bytes32_field(self.key, "config key")
        if is_zero_bytes32(key):
            raise InvalidMutation("Config key cannot be empty")
        return ConfigMutation(key, _bytes32_field(self.value, "config value"))

    def apply(self, registrar, caller: str) -> None:
        registrar.update_config(caller, self.key, self.value)

    def describe(self) -> str:
        return f"set {bytes32_to_str(self.key)!r} = 0x{self.value.hex()}"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "config", "key": "0x" + self.key.hex(), "value": "0x" + self.value.hex()}


@dataclass(frozen=True)
class ResetMutation:
    """Restore the registry to its bootstrap snapshot."""

    def validated(self) -> "ResetMutation":
        return self

    def apply(self, registrar, caller: str) -> None:
        registrar.reset(caller)

    def describe(self) -> str:
        return "reset registry"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "reset"}


Mutation = Union[ListMutation, ConfigMutation, ResetMutation]


def validate_mutation(mutation: Any) -> Mutation:
    """Return the normalized form of *mutation* or raise InvalidMutation."""
    if not isinstance(mutation, (ListMutation, ConfigMutation, ResetMutation)):
        raise InvalidMutation(f"Unsupported proposal target: {type(mutation).__name__}")
    return mutation.validated()


# ══════════════════════════════════════════════════════════════════════
#  STATES
# ══════════════════════════════════════════════════════════════════════

class ProposalState(IntEnum):
    """Lifecycle stage."""
    PENDING = 0      # Created, voting window not yet open
    ACTIVE = 1       # Voting in progress
    SUCCEEDED = 2    # Window closed, both tracks passed, not yet resolved
    DEFEATED = 3     # Window closed with a failing track (terminal once resolved)
    EXECUTED = 4     # Mutation applied, fee refunded
    EXPIRED = 5      # Never resolved before the hard deadline


# Derived state at resolution → stored terminal status
_RESOLUTIONS: Dict[ProposalState, ProposalState] = {
    ProposalState.SUCCEEDED: ProposalState.EXECUTED,
    ProposalState.DEFEATED:  ProposalState.DEFEATED,
    ProposalState.EXPIRED:   ProposalState.EXPIRED,
}


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Proposal:
    """
    Governance proposal targeting one registry mutation.

    Fields:
        id:                  Sequential identifier, starting at 1
        proposer:            Address that paid the fee
        mutation:            Registry change applied on success
        fee:                 Fee paid at creation (refunded or forfeited)
        epoch:               Fee epoch the proposal was created in
        created_at:          Creation timestamp
        snapshot_timepoint:  Timepoint voting power and supply are read at
        vote_start:          First timestamp votes are accepted
        vote_end:            First timestamp votes are refused
        deadline:            Hard deadline for resolution
        tallies:             Per-track vote tallies
        status:              Stored terminal status (None until resolved)
    """
    id: int
    proposer: str
    mutation: Mutation
    fee: int
    epoch: int
    created_at: int
    snapshot_timepoint: int
    vote_start: int
    vote_end: int
    deadline: int
    tallies: Dict[Track, TrackTally]
    description: str = ""
    status: Optional[ProposalState] = None
    resolved_at: Optional[int] = None
    receipts: Dict[Tuple[Track, str], VoteReceipt] = field(default_factory=dict, repr=False)
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    # ── State ─────────────────────────────────────────────────────────

    def state_at(self, now: int) -> ProposalState:
        if self.status is not None:
            return self.status
        if now < self.vote_start:
            return ProposalState.PENDING
        if now < self.vote_end:
            return ProposalState.ACTIVE
        if now >= self.deadline:
            return ProposalState.EXPIRED
        if dual_quorum_passed(self.tallies.values()):
            return ProposalState.SUCCEEDED
        return ProposalState.DEFEATED

    @property
    def is_resolved(self) -> bool:
        return self.status is not None

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    def resolve(self, now: int, reason: str = "") -> ProposalState:
        """
        Store the terminal status matching the derived state at *now*.

        Raises ProposalLifecycleError when the proposal cannot be resolved.
        """
        current = self.state_at(now)
        if self.status is not None or current not in _RESOLUTIONS:
            raise ProposalLifecycleError(
                f"Cannot resolve proposal #{self.id} in state {current.name}"
            )
        final = _RESOLUTIONS[current]
        self._history.append({
            "from": current.name,
            "to": final.name,
            "reason": reason,
            "timestamp": now,
        })
        self.status = final
        self.resolved_at = now
        logger.info(f"Proposal #{self.id}: {current.name} → {final.name} | {reason}")
        return final

    # ── Votes ─────────────────────────────────────────────────────────

    def record_vote(self, receipt: VoteReceipt) -> Optional[VoteReceipt]:
        """
        Record *receipt*, replacing the voter's earlier choice on that track.

        Returns the replaced receipt, if any.
        """
        key = (receipt.track, receipt.voter)
        previous = self.receipts.get(key)
        tally = self.tallies[receipt.track]
        if previous is not None:
            tally.remove(previous.support, previous.weight)
        tally.add(receipt.support, receipt.weight)
        self.receipts[key] = receipt
        return previous

    def participant_weights(self) -> Dict[str, int]:
        """Voter → weight summed across both tracks."""
        weights: Dict[str, int] = {}
        for (_, voter), receipt in self.receipts.items():
            weights[voter] = weights.get(voter, 0) + receipt.weight
        return weights

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self, now: Optional[int] = None) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "proposer": self.proposer,
            "mutation": self.mutation.to_dict(),
            "description": self.description,
            "fee": self.fee,
            "epoch": self.epoch,
            "createdAt": self.created_at,
            "snapshot": self.snapshot_timepoint,
            "voteStart": self.vote_start,
            "voteEnd": self.vote_end,
            "deadline": self.deadline,
            "tallies": {track.name: tally.to_dict() for track, tally in self.tallies.items()},
            "voters": len({voter for _, voter in self.receipts}),
            "status": self.status.name if self.status is not None else None,
            "resolvedAt": self.resolved_at,
        }
        if now is not None:
            result["state"] = self.state_at(now).name
        return result

    def __repr__(self) -> str:
        status = self.status.name if self.status is not None else "UNRESOLVED"
        return f"<Proposal #{self.id} {self.mutation.describe()!r} status={status}>"
