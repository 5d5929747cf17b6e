"""
Proposal Fee Economy

The proposal fee is recomputed at every epoch rollover from the number of
proposals created in the epoch that just ended:

    count > target  →  fee * 2, capped at max_fee
    count < target  →  fee // 2, floored at min_fee
    count == target →  unchanged

Epochs in which nothing happened still roll over, each with a count of 0.
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict

from ..exceptions import ConfigurationError


def adjust_fee(fee: int, proposal_count: int, target: int, min_fee: int, max_fee: int) -> int:
    if proposal_count > target:
        return min(fee * 2, max_fee)
    if proposal_count < target:
        return max(fee // 2, min_fee)
    return fee


@dataclass
class EpochState:
    """Fee epoch bookkeeping owned by the governor."""
    proposal_fee: int
    min_fee: int
    max_fee: int
    target_proposals: int
    epoch_duration: int
    genesis: int
    epoch: int = 0
    proposal_count: int = 0

    def __post_init__(self):
        if self.min_fee < 1:
            raise ConfigurationError(f"min_fee must be >= 1, got {self.min_fee}")
        if not self.min_fee <= self.proposal_fee <= self.max_fee:
            raise ConfigurationError(
                f"Proposal fee {self.proposal_fee} outside [{self.min_fee}, {self.max_fee}]"
            )
        if self.epoch_duration < 1:
            raise ConfigurationError("epoch_duration must be >= 1")
        if self.target_proposals < 0:
            raise ConfigurationError("target_proposals must be >= 0")

    def epoch_at(self, timestamp: int) -> int:
        return max(0, (timestamp - self.genesis) // self.epoch_duration)

    def roll_forward(self, timestamp: int) -> int:
        """
        Advance to the epoch containing *timestamp*, adjusting the fee once
        per elapsed epoch. Returns the number of rollovers applied.
        """
        target_epoch = self.epoch_at(timestamp)
        rollovers = target_epoch - self.epoch
        if rollovers <= 0:
            return 0

        count = self.proposal_count
        for _ in range(rollovers):
            new_fee = adjust_fee(
                self.proposal_fee, count, self.target_proposals, self.min_fee, self.max_fee
            )
            # Remaining epochs are empty; stop once an empty epoch is a fixed point
            if count == 0 and new_fee == self.proposal_fee:
                break
            self.proposal_fee = new_fee
            count = 0

        self.epoch = target_epoch
        self.proposal_count = 0
        return rollovers

    def preview(self, timestamp: int) -> "EpochState":
        """Copy of this state as it would be after rolling to *timestamp*."""
        state = copy.copy(self)
        state.roll_forward(timestamp)
        return state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch": self.epoch,
            "proposalFee": self.proposal_fee,
            "minFee": self.min_fee,
            "maxFee": self.max_fee,
            "targetProposals": self.target_proposals,
            "proposalCount": self.proposal_count,
            "epochDuration": self.epoch_duration,
        }
