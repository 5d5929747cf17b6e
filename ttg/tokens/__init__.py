"""
TTG Tokens Module

- Token: ERC20-style cash token with minters and ERC712 permit
- VotingToken: checkpointed, delegable voting power for the vote and value tracks
"""

from .erc20 import Token, TRANSFER_EVENT, APPROVAL_EVENT
from .votes import VotingToken, DELEGATE_CHANGED_EVENT, DELEGATE_VOTES_CHANGED_EVENT

__all__ = [
    "Token",
    "VotingToken",
    "TRANSFER_EVENT",
    "APPROVAL_EVENT",
    "DELEGATE_CHANGED_EVENT",
    "DELEGATE_VOTES_CHANGED_EVENT",
]
