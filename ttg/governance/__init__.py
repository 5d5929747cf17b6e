"""
TTG Dual-Quorum Governance

Provides:
  - ListMutation / ConfigMutation / ResetMutation / Proposal / ProposalState  (proposals.py)
  - Track / Support / TrackTally / VoteReceipt                                (voting.py)
  - EpochState / adjust_fee                                                   (fees.py)
  - DualGovernor                                                              (governor.py)
  - GovernorDeployer                                                          (deployer.py)
"""

from .proposals import (
    ConfigMutation,
    ListMutation,
    Mutation,
    Proposal,
    ProposalState,
    ResetMutation,
    validate_mutation,
)
from .voting import (
    Support,
    Track,
    TrackTally,
    VoteReceipt,
    dual_quorum_passed,
    failing_tracks,
    require_dual_quorum,
)
from .fees import EpochState, adjust_fee
from .governor import DualGovernor
from .deployer import GovernorDeployer

__all__ = [
    # Proposals
    "ConfigMutation",
    "ListMutation",
    "Mutation",
    "Proposal",
    "ProposalState",
    "ResetMutation",
    "validate_mutation",
    # Voting
    "Support",
    "Track",
    "TrackTally",
    "VoteReceipt",
    "dual_quorum_passed",
    "failing_tracks",
    "require_dual_quorum",
    # Fees
    "EpochState",
    "adjust_fee",
    # Governor
    "DualGovernor",
    "GovernorDeployer",
]
