"""
TTG Auction

Provides:
  - AuctionRound / AuctionRoundStatus / AuctionVault   (vault.py)
"""

from .vault import AuctionRound, AuctionRoundStatus, AuctionVault

__all__ = [
    "AuctionRound",
    "AuctionRoundStatus",
    "AuctionVault",
]
