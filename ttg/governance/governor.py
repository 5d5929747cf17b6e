"""
Dual Governor

Runs the proposal state machine and the proposal-fee economy:

  - propose      exact fee payment, snapshot of both tracks' supply
  - cast_vote    snapshotted weight, one live choice per (voter, track)
  - resolve      dual-quorum outcome; executes the registry mutation and
                 refunds + rewards the proposer, or forwards the forfeited
                 fee and the voters' participation to the auction vault

Every state change is recorded before any token transfer, and resolution
is guarded against re-entry from token callbacks.
"""

from typing import Any, Dict, List, Optional, Set

from ..constants import BALLOT_TYPE, MAX_QUORUM_RATIO
from ..crypto.address import to_checksum_address
from ..crypto.eip712 import ERC712, hash_struct
from ..exceptions import (
    AlreadyResolved,
    ConfigurationError,
    FeeMismatch,
    InsufficientFee,
    NoVotingPower,
    ProposalNotFound,
    ResetWhileActive,
    TransferFailed,
    VotingWindowClosed,
    VotingWindowNotOpen,
    VotingWindowOpen,
)
from ..ledger import Ledger, LedgerParticipant, atomic, non_reentrant
from ..logger import get_logger
from ..registry.registrar import AuthorizedMutator
from .fees import EpochState
from .proposals import Mutation, Proposal, ProposalState, ResetMutation, validate_mutation
from .voting import (
    Track,
    TrackTally,
    VoteReceipt,
    failing_tracks,
    parse_support,
    parse_track,
    require_dual_quorum,
)

logger = get_logger(__name__)


PROPOSAL_CREATED_EVENT = "ProposalCreated(uint256,address,uint256,uint256,uint256,string)"
VOTE_CAST_EVENT = "VoteCast(address,uint256,uint8,uint8,uint256)"
PROPOSAL_EXECUTED_EVENT = "ProposalExecuted(uint256)"
PROPOSAL_DEFEATED_EVENT = "ProposalDefeated(uint256,uint256)"
PROPOSAL_EXPIRED_EVENT = "ProposalExpired(uint256,uint256)"

# States in which a proposal still counts as in flight for a registry reset.
# A passed but unresolved reset never blocks another reset.
_IN_FLIGHT = (ProposalState.PENDING, ProposalState.ACTIVE, ProposalState.SUCCEEDED)


class DualGovernor(LedgerParticipant):
    """
    Governor requiring agreement of both the power and the zero token
    populations before a registry mutation is executed.
    """

    _snapshot_fields = ("_proposals", "_proposal_count", "_open_proposals", "_epoch", "_erc712")

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        registrar: AuthorizedMutator,
        vault,
        cash_token,
        power_token,
        zero_token,
        proposal_fee: int,
        min_fee: int,
        max_fee: int,
        reward: int,
        power_quorum_ratio: int,
        zero_quorum_ratio: int,
        voting_delay: int,
        voting_period: int,
        resolution_grace: int,
        epoch_duration: int,
        target_proposals: int,
        name: str = "DualGovernor",
    ):
        if voting_period < 1 or resolution_grace < 1:
            raise ConfigurationError("voting_period and resolution_grace must be >= 1")
        if voting_delay < 0 or reward < 0:
            raise ConfigurationError("voting_delay and reward must be >= 0")
        for ratio in (power_quorum_ratio, zero_quorum_ratio):
            if not 0 <= ratio <= MAX_QUORUM_RATIO:
                raise ConfigurationError(f"Quorum ratio {ratio} outside 0-{MAX_QUORUM_RATIO} bps")
        epoch = EpochState(
            proposal_fee=proposal_fee,
            min_fee=min_fee,
            max_fee=max_fee,
            target_proposals=target_proposals,
            epoch_duration=epoch_duration,
            genesis=ledger.timestamp,
        )
        super().__init__(ledger, address)

        self.registrar = registrar
        self.vault = vault
        self.cash_token = cash_token
        self.power_token = power_token
        self.zero_token = zero_token
        self.reward = reward
        self.quorum_ratios: Dict[Track, int] = {
            Track.VOTE: power_quorum_ratio,
            Track.VALUE: zero_quorum_ratio,
        }
        self.voting_delay = voting_delay
        self.voting_period = voting_period
        self.resolution_grace = resolution_grace

        self._proposals: Dict[int, Proposal] = {}
        self._proposal_count = 0
        self._open_proposals: Set[int] = set()
        self._epoch = epoch
        self._erc712 = ERC712(name, ledger.chain_id, self.address)

        logger.info(
            f"DualGovernor deployed at {self.address} "
            f"(fee={proposal_fee} [{min_fee}, {max_fee}], reward={reward}, "
            f"quorum={power_quorum_ratio}/{zero_quorum_ratio} bps)"
        )

    # ── Helpers ───────────────────────────────────────────────────────

    def token_for(self, track: Track):
        return self.power_token if track == Track.VOTE else self.zero_token

    def _get(self, proposal_id: int) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFound(f"Proposal #{proposal_id} not found")
        return proposal

    def _roll_epoch(self) -> None:
        old_fee = self._epoch.proposal_fee
        rollovers = self._epoch.roll_forward(self.now)
        if rollovers and self._epoch.proposal_fee != old_fee:
            logger.info(
                f"Epoch {self._epoch.epoch}: proposal fee {old_fee} → "
                f"{self._epoch.proposal_fee} ({rollovers} rollover(s))"
            )

    # ══════════════════════════════════════════════════════════════════
    #  PROPOSE
    # ══════════════════════════════════════════════════════════════════

    @atomic
    def propose(
        self,
        caller: str,
        mutation: Mutation,
        fee_payment: int,
        description: str = "",
    ) -> int:
        """
        Create a proposal targeting *mutation*, paying exactly the current fee.

        Returns:
            The new proposal id.
        """
        caller = to_checksum_address(caller)
        self._roll_epoch()
        mutation = validate_mutation(mutation)

        required = self._epoch.proposal_fee
        if fee_payment < required:
            raise InsufficientFee(fee_payment, required)
        if fee_payment > required:
            raise FeeMismatch(fee_payment, required)

        now = self.now
        snapshot = now - 1
        self._proposal_count += 1
        proposal_id = self._proposal_count
        vote_start = now + self.voting_delay
        vote_end = vote_start + self.voting_period

        proposal = Proposal(
            id=proposal_id,
            proposer=caller,
            mutation=mutation,
            fee=required,
            epoch=self._epoch.epoch,
            created_at=now,
            snapshot_timepoint=snapshot,
            vote_start=vote_start,
            vote_end=vote_end,
            deadline=vote_end + self.resolution_grace,
            tallies={
                track: TrackTally(
                    track=track,
                    snapshot_supply=self.token_for(track).get_past_total_supply(snapshot),
                    quorum_ratio=self.quorum_ratios[track],
                )
                for track in Track
            },
            description=description,
        )
        self._proposals[proposal_id] = proposal
        self._open_proposals.add(proposal_id)
        self._epoch.proposal_count += 1

        self._emit(
            "ProposalCreated", PROPOSAL_CREATED_EVENT,
            proposal_id=proposal_id, proposer=caller, fee=required,
            vote_start=vote_start, vote_end=vote_end, description=description,
        )

        if not self.cash_token.transfer_from(self.address, caller, self.address, required):
            raise TransferFailed(f"Fee transfer of {required} from {caller} failed")

        logger.info(
            f"Proposal #{proposal_id} created by {caller}: {mutation.describe()} "
            f"(fee={required}, voting {vote_start}-{vote_end})"
        )
        return proposal_id

    # ══════════════════════════════════════════════════════════════════
    #  VOTE
    # ══════════════════════════════════════════════════════════════════

    def _cast_vote(self, voter: str, proposal_id: int, support: Any, track: Any) -> int:
        proposal = self._get(proposal_id)
        support = parse_support(support)
        track = parse_track(track)

        state = proposal.state_at(self.now)
        if state == ProposalState.PENDING:
            raise VotingWindowNotOpen(
                f"Voting on proposal #{proposal_id} opens at {proposal.vote_start}"
            )
        if state != ProposalState.ACTIVE:
            raise VotingWindowClosed(
                f"Voting on proposal #{proposal_id} closed at {proposal.vote_end} "
                f"(state={state.name})"
            )

        weight = self.token_for(track).get_past_votes(voter, proposal.snapshot_timepoint)
        if weight == 0:
            raise NoVotingPower(
                f"{voter} had no {track.name} voting power at {proposal.snapshot_timepoint}"
            )

        previous = proposal.record_vote(
            VoteReceipt(
                proposal_id=proposal_id,
                voter=voter,
                track=track,
                support=support,
                weight=weight,
                timestamp=self.now,
            )
        )
        self._emit(
            "VoteCast", VOTE_CAST_EVENT,
            voter=voter, proposal_id=proposal_id, support=int(support),
            track=int(track), weight=weight,
        )
        changed = f" (was {previous.support.name})" if previous else ""
        logger.info(
            f"Vote: {voter} → {support.name}{changed} on Proposal #{proposal_id} "
            f"[{track.name}] weight={weight}"
        )
        return weight

    @atomic
    def cast_vote(self, caller: str, proposal_id: int, support: Any, track: Any) -> int:
        """
        Vote on one track; re-voting replaces the earlier choice.

        Returns:
            The snapshotted weight applied.
        """
        return self._cast_vote(to_checksum_address(caller), proposal_id, support, track)

    @atomic
    def cast_votes(self, caller: str, proposal_id: int, support: Any) -> Dict[Track, int]:
        """Vote the same way on every track the caller had power on."""
        caller = to_checksum_address(caller)
        proposal = self._get(proposal_id)
        weights: Dict[Track, int] = {}
        for track in Track:
            if proposal.state_at(self.now) != ProposalState.ACTIVE:
                break
            if self.token_for(track).get_past_votes(caller, proposal.snapshot_timepoint):
                weights[track] = self._cast_vote(caller, proposal_id, support, track)
        if not weights:
            # Surfaces the window or no-power error of the first track
            self._cast_vote(caller, proposal_id, support, Track.VOTE)
        return weights

    @atomic
    def cast_vote_by_sig(
        self,
        voter: str,
        proposal_id: int,
        support: Any,
        track: Any,
        nonce: int,
        deadline: int,
        v: int,
        r: int,
        s: int,
    ) -> int:
        """Vote on behalf of *voter* with an ERC712-signed Ballot."""
        voter = to_checksum_address(voter)
        support, track = parse_support(support), parse_track(track)
        self._erc712.verify_and_consume(
            voter,
            self.ballot_struct_hash(proposal_id, support, track, nonce, deadline),
            nonce,
            deadline,
            self.now,
            v, r, s,
        )
        return self._cast_vote(voter, proposal_id, support, track)

    @staticmethod
    def ballot_struct_hash(proposal_id: int, support: int, track: int, nonce: int, deadline: int) -> bytes:
        return hash_struct(
            BALLOT_TYPE,
            ["uint256", "uint8", "uint8", "uint256", "uint256"],
            [proposal_id, int(support), int(track), nonce, deadline],
        )

    def ballot_digest(self, proposal_id: int, support: int, track: int, nonce: int, deadline: int) -> bytes:
        return self._erc712.digest(
            self.ballot_struct_hash(proposal_id, support, track, nonce, deadline)
        )

    # ══════════════════════════════════════════════════════════════════
    #  RESOLVE
    # ══════════════════════════════════════════════════════════════════

    def _blocks_reset(self, proposal: Proposal) -> bool:
        state = proposal.state_at(self.now)
        if state == ProposalState.SUCCEEDED and isinstance(proposal.mutation, ResetMutation):
            return False
        return state in _IN_FLIGHT

    def _require_no_reset_conflict(self, proposal_id: int) -> None:
        in_flight = sorted(
            pid for pid in self._open_proposals
            if pid != proposal_id and self._blocks_reset(self._proposals[pid])
        )
        if in_flight:
            raise ResetWhileActive(
                f"Cannot reset registry while proposals {in_flight} are in flight"
            )

    @atomic
    @non_reentrant
    def resolve(self, caller: str, proposal_id: int) -> ProposalState:
        """
        Settle a proposal whose voting window has closed.

        Returns:
            The stored terminal status (EXECUTED, DEFEATED or EXPIRED).
        """
        proposal = self._get(proposal_id)
        if proposal.is_resolved:
            raise AlreadyResolved(
                f"Proposal #{proposal_id} already resolved as {proposal.status.name}"
            )

        state = proposal.state_at(self.now)
        if state in (ProposalState.PENDING, ProposalState.ACTIVE):
            raise VotingWindowOpen(
                f"Proposal #{proposal_id} voting window ends at {proposal.vote_end}"
            )

        if state == ProposalState.SUCCEEDED:
            return self._execute(proposal)
        return self._forfeit(proposal, state)

    def _execute(self, proposal: Proposal) -> ProposalState:
        # Checks
        require_dual_quorum(proposal.tallies.values())
        if isinstance(proposal.mutation, ResetMutation):
            self._require_no_reset_conflict(proposal.id)

        # Effects
        final = proposal.resolve(self.now, "Both tracks passed")
        self._open_proposals.discard(proposal.id)
        self._emit("ProposalExecuted", PROPOSAL_EXECUTED_EVENT, proposal_id=proposal.id)

        # Interactions
        proposal.mutation.apply(self.registrar, self.address)
        if not self.cash_token.transfer(self.address, proposal.proposer, proposal.fee):
            raise TransferFailed(f"Fee refund of {proposal.fee} to {proposal.proposer} failed")
        if self.reward:
            self.zero_token.mint(self.address, proposal.proposer, self.reward)

        logger.info(
            f"Proposal #{proposal.id} EXECUTED: {proposal.mutation.describe()} "
            f"(refund={proposal.fee}, reward={self.reward})"
        )
        return final

    def _forfeit(self, proposal: Proposal, state: ProposalState) -> ProposalState:
        failing = [t.name for t in failing_tracks(proposal.tallies.values())]
        reason = (
            "Resolution deadline passed" if state == ProposalState.EXPIRED
            else f"Failing tracks: {', '.join(failing)}"
        )

        # Effects
        final = proposal.resolve(self.now, reason)
        self._open_proposals.discard(proposal.id)
        participants = proposal.participant_weights()
        if final == ProposalState.EXPIRED:
            self._emit("ProposalExpired", PROPOSAL_EXPIRED_EVENT, proposal_id=proposal.id, fee=proposal.fee)
        else:
            self._emit("ProposalDefeated", PROPOSAL_DEFEATED_EVENT, proposal_id=proposal.id, fee=proposal.fee)

        # Interactions
        self.vault.record_deposit(self.address, proposal.fee, participants)
        if not self.cash_token.transfer(self.address, self.vault.address, proposal.fee):
            raise TransferFailed(f"Fee transfer of {proposal.fee} to vault failed")

        logger.info(
            f"Proposal #{proposal.id} {final.name}: fee {proposal.fee} forwarded to vault "
            f"({len(participants)} participants) | {reason}"
        )
        return final

    # ══════════════════════════════════════════════════════════════════
    #  QUERIES
    # ══════════════════════════════════════════════════════════════════

    def state(self, proposal_id: int) -> ProposalState:
        return self._get(proposal_id).state_at(self.now)

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self._get(proposal_id)

    @property
    def proposal_count(self) -> int:
        return self._proposal_count

    @property
    def proposal_fee(self) -> int:
        """Fee a proposal created now must pay."""
        return self._epoch.preview(self.now).proposal_fee

    @property
    def epoch_state(self) -> EpochState:
        return self._epoch.preview(self.now)

    @property
    def open_proposals(self) -> List[int]:
        return sorted(self._open_proposals)

    def quorum(self, track: Any, proposal_id: int) -> int:
        """For-votes needed on *track* for *proposal_id* to reach quorum."""
        return self._get(proposal_id).tallies[parse_track(track)].quorum

    def has_voted(self, proposal_id: int, voter: str, track: Optional[Any] = None) -> bool:
        proposal = self._get(proposal_id)
        voter = to_checksum_address(voter)
        tracks = [parse_track(track)] if track is not None else list(Track)
        return any((t, voter) in proposal.receipts for t in tracks)

    def get_receipt(self, proposal_id: int, voter: str, track: Any) -> Optional[VoteReceipt]:
        return self._get(proposal_id).receipts.get((parse_track(track), to_checksum_address(voter)))

    @property
    def domain_separator(self) -> bytes:
        return self._erc712.domain_separator

    def nonces(self, account: str) -> int:
        return self._erc712.nonces(account)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "registrar": self.registrar.address,
            "vault": self.vault.address,
            "cashToken": self.cash_token.address,
            "powerToken": self.power_token.address,
            "zeroToken": self.zero_token.address,
            "reward": self.reward,
            "quorumRatios": {t.name: r for t, r in self.quorum_ratios.items()},
            "votingDelay": self.voting_delay,
            "votingPeriod": self.voting_period,
            "resolutionGrace": self.resolution_grace,
            "epoch": self.epoch_state.to_dict(),
            "proposalCount": self._proposal_count,
            "openProposals": self.open_proposals,
            "proposals": {pid: p.to_dict(self.now) for pid, p in self._proposals.items()},
        }

    def __repr__(self) -> str:
        return (
            f"<DualGovernor at {self.address} proposals={self._proposal_count} "
            f"fee={self.proposal_fee}>"
        )
