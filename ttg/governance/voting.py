"""
Dual-Quorum Voting

Two independently weighted voter populations vote on every proposal:

  - Track.VOTE   weighted by the power token
  - Track.VALUE  weighted by the zero (value) token

A track passes when, against the supply snapshotted at proposal creation,

    votes_for * ONE >= quorum_ratio * snapshot_supply   and
    votes_for > votes_against

and a proposal succeeds only when both tracks pass.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, List

from ..constants import MAX_QUORUM_RATIO, ONE
from ..exceptions import GovernanceError, QuorumNotMet
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  VOTE DATA
# ══════════════════════════════════════════════════════════════════════

class Track(IntEnum):
    """Voting population (uint8 in signed ballots)."""
    VOTE = 0    # power token holders
    VALUE = 1   # zero token holders


class Support(IntEnum):
    """Ballot choice (uint8 in signed ballots)."""
    AGAINST = 0
    FOR = 1


def parse_track(track: Any) -> Track:
    try:
        return Track(track)
    except ValueError as e:
        raise GovernanceError(f"Invalid track: {track!r}") from e


def parse_support(support: Any) -> Support:
    if isinstance(support, bool):
        return Support.FOR if support else Support.AGAINST
    try:
        return Support(support)
    except ValueError as e:
        raise GovernanceError(f"Invalid vote type: {support!r}") from e


@dataclass(frozen=True)
class VoteReceipt:
    """A vote cast by one voter on one track of one proposal."""
    proposal_id: int
    voter: str
    track: Track
    support: Support
    weight: int
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": self.proposal_id,
            "voter": self.voter,
            "track": self.track.name,
            "support": self.support.name,
            "weight": self.weight,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  TALLY
# ══════════════════════════════════════════════════════════════════════

@dataclass
class TrackTally:
    """Per-track tally against the snapshotted supply."""
    track: Track
    snapshot_supply: int
    quorum_ratio: int
    votes_for: int = 0
    votes_against: int = 0

    def __post_init__(self):
        if not 0 <= self.quorum_ratio <= MAX_QUORUM_RATIO:
            raise GovernanceError(
                f"Quorum ratio {self.quorum_ratio} outside 0-{MAX_QUORUM_RATIO}"
            )

    def add(self, support: Support, weight: int) -> None:
        if support == Support.FOR:
            self.votes_for += weight
        else:
            self.votes_against += weight

    def remove(self, support: Support, weight: int) -> None:
        if support == Support.FOR:
            self.votes_for -= weight
        else:
            self.votes_against -= weight

    @property
    def quorum(self) -> int:
        """Smallest for-vote count satisfying the ratio."""
        return -(-self.quorum_ratio * self.snapshot_supply // ONE)

    @property
    def quorum_reached(self) -> bool:
        return self.votes_for * ONE >= self.quorum_ratio * self.snapshot_supply

    @property
    def majority_reached(self) -> bool:
        return self.votes_for > self.votes_against

    @property
    def passed(self) -> bool:
        return self.quorum_reached and self.majority_reached

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track": self.track.name,
            "votesFor": self.votes_for,
            "votesAgainst": self.votes_against,
            "snapshotSupply": self.snapshot_supply,
            "quorumRatio": self.quorum_ratio,
            "quorum": self.quorum,
            "passed": self.passed,
        }


def failing_tracks(tallies: Iterable[TrackTally]) -> List[Track]:
    return [tally.track for tally in tallies if not tally.passed]


def dual_quorum_passed(tallies: Iterable[TrackTally]) -> bool:
    tallies = list(tallies)
    return bool(tallies) and not failing_tracks(tallies)


def require_dual_quorum(tallies: Iterable[TrackTally]) -> None:
    """Raise QuorumNotMet naming every track that fails."""
    tallies = list(tallies)
    failing = failing_tracks(tallies)
    if failing or not tallies:
        details = ", ".join(
            f"{t.track.name} {t.votes_for}/{t.quorum} for, {t.votes_against} against"
            for t in tallies if t.track in failing
        )
        raise QuorumNotMet(f"Dual quorum not met: {details or 'no tracks'}")
