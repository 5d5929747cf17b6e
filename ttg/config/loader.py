"""
TTG TOML Configuration Loader

Loads the protocol deployment parameters from config.toml with
environment variable overrides. Every section is a dataclass with
from_dict / apply_env; ProtocolConfig aggregates them.

Environment variable mapping:
    [chain] chain_id                 → TTG_CHAIN_ID
    [governor] proposal_fee          → TTG_PROPOSAL_FEE
    [governor] power_quorum_ratio    → TTG_POWER_QUORUM_RATIO
    [auction] start_price            → TTG_AUCTION_START_PRICE
    ...
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import (
    DEFAULT_AUCTION_DECAY_DURATION,
    DEFAULT_AUCTION_FLOOR_PRICE,
    DEFAULT_AUCTION_ROUND_DURATION,
    DEFAULT_AUCTION_START_PRICE,
    DEFAULT_BLOCK_TIME,
    DEFAULT_CHAIN_ID,
    DEFAULT_EPOCH_DURATION,
    DEFAULT_GENESIS_TIME,
    DEFAULT_MAX_PROPOSAL_FEE,
    DEFAULT_MIN_PROPOSAL_FEE,
    DEFAULT_PROPOSAL_FEE,
    DEFAULT_PROPOSAL_REWARD,
    DEFAULT_RESOLUTION_GRACE,
    DEFAULT_TARGET_PROPOSALS_PER_EPOCH,
    DEFAULT_TOKEN_DECIMALS,
    DEFAULT_VALUE_QUORUM_RATIO,
    DEFAULT_VOTE_QUORUM_RATIO,
    DEFAULT_VOTING_DELAY,
    DEFAULT_VOTING_PERIOD,
    MAX_QUORUM_RATIO,
    MAX_TOKEN_DECIMALS,
)
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Section dataclasses mirroring every [section] of config.example.toml
# ---------------------------------------------------------------------------


@dataclass
class ChainConfig:
    """[chain] section."""
    chain_id: int = DEFAULT_CHAIN_ID
    genesis_time: int = DEFAULT_GENESIS_TIME
    block_time: int = DEFAULT_BLOCK_TIME

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainConfig":
        return cls(
            chain_id=data.get("chain_id", DEFAULT_CHAIN_ID),
            genesis_time=data.get("genesis_time", DEFAULT_GENESIS_TIME),
            block_time=data.get("block_time", DEFAULT_BLOCK_TIME),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("TTG_CHAIN_ID"):
            self.chain_id = int(v)
        if v := os.environ.get("TTG_GENESIS_TIME"):
            self.genesis_time = int(v)


# -- Tokens -------------------------------------------------------------

@dataclass
class TokenConfig:
    """[tokens.<name>] section."""
    name: str
    symbol: str
    decimals: int = DEFAULT_TOKEN_DECIMALS
    balances: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default: "TokenConfig") -> "TokenConfig":
        return cls(
            name=data.get("name", default.name),
            symbol=data.get("symbol", default.symbol),
            decimals=data.get("decimals", default.decimals),
            balances=dict(data.get("balances", default.balances)),
        )

    def validate(self) -> None:
        if not self.name or not self.symbol:
            raise ConfigurationError("Token name and symbol are required")
        if not 0 <= self.decimals <= MAX_TOKEN_DECIMALS:
            raise ConfigurationError(f"Token decimals must be 0-{MAX_TOKEN_DECIMALS}")
        for account, amount in self.balances.items():
            if amount < 0:
                raise ConfigurationError(f"Negative {self.symbol} balance for {account}")


def _default_cash() -> TokenConfig:
    return TokenConfig(name="Cash Token", symbol="CASH")


def _default_power() -> TokenConfig:
    return TokenConfig(name="Power Token", symbol="POWER", decimals=0)


def _default_zero() -> TokenConfig:
    return TokenConfig(name="Zero Token", symbol="ZERO", decimals=6)


@dataclass
class TokensConfig:
    """[tokens] section."""
    cash: TokenConfig = field(default_factory=_default_cash)
    power: TokenConfig = field(default_factory=_default_power)
    zero: TokenConfig = field(default_factory=_default_zero)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokensConfig":
        return cls(
            cash=TokenConfig.from_dict(data.get("cash", {}), _default_cash()),
            power=TokenConfig.from_dict(data.get("power", {}), _default_power()),
            zero=TokenConfig.from_dict(data.get("zero", {}), _default_zero()),
        )


# -- Governance ---------------------------------------------------------

@dataclass
class GovernorConfig:
    """[governor] section."""
    proposal_fee: int = DEFAULT_PROPOSAL_FEE
    min_proposal_fee: int = DEFAULT_MIN_PROPOSAL_FEE
    max_proposal_fee: int = DEFAULT_MAX_PROPOSAL_FEE
    reward: int = DEFAULT_PROPOSAL_REWARD
    power_quorum_ratio: int = DEFAULT_VOTE_QUORUM_RATIO
    zero_quorum_ratio: int = DEFAULT_VALUE_QUORUM_RATIO
    voting_delay: int = DEFAULT_VOTING_DELAY
    voting_period: int = DEFAULT_VOTING_PERIOD
    resolution_grace: int = DEFAULT_RESOLUTION_GRACE
    epoch_duration: int = DEFAULT_EPOCH_DURATION
    target_proposals_per_epoch: int = DEFAULT_TARGET_PROPOSALS_PER_EPOCH

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernorConfig":
        return cls(
            proposal_fee=data.get("proposal_fee", DEFAULT_PROPOSAL_FEE),
            min_proposal_fee=data.get("min_proposal_fee", DEFAULT_MIN_PROPOSAL_FEE),
            max_proposal_fee=data.get("max_proposal_fee", DEFAULT_MAX_PROPOSAL_FEE),
            reward=data.get("reward", DEFAULT_PROPOSAL_REWARD),
            power_quorum_ratio=data.get("power_quorum_ratio", DEFAULT_VOTE_QUORUM_RATIO),
            zero_quorum_ratio=data.get("zero_quorum_ratio", DEFAULT_VALUE_QUORUM_RATIO),
            voting_delay=data.get("voting_delay", DEFAULT_VOTING_DELAY),
            voting_period=data.get("voting_period", DEFAULT_VOTING_PERIOD),
            resolution_grace=data.get("resolution_grace", DEFAULT_RESOLUTION_GRACE),
            epoch_duration=data.get("epoch_duration", DEFAULT_EPOCH_DURATION),
            target_proposals_per_epoch=data.get(
                "target_proposals_per_epoch", DEFAULT_TARGET_PROPOSALS_PER_EPOCH
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("TTG_PROPOSAL_FEE"):
            self.proposal_fee = int(v)
        if v := os.environ.get("TTG_MIN_PROPOSAL_FEE"):
            self.min_proposal_fee = int(v)
        if v := os.environ.get("TTG_MAX_PROPOSAL_FEE"):
            self.max_proposal_fee = int(v)
        if v := os.environ.get("TTG_PROPOSAL_REWARD"):
            self.reward = int(v)
        if v := os.environ.get("TTG_POWER_QUORUM_RATIO"):
            self.power_quorum_ratio = int(v)
        if v := os.environ.get("TTG_ZERO_QUORUM_RATIO"):
            self.zero_quorum_ratio = int(v)
        if v := os.environ.get("TTG_VOTING_PERIOD"):
            self.voting_period = int(v)

    def validate(self) -> None:
        if self.min_proposal_fee < 1:
            raise ConfigurationError("min_proposal_fee must be >= 1")
        if not self.min_proposal_fee <= self.proposal_fee <= self.max_proposal_fee:
            raise ConfigurationError(
                "proposal_fee must lie within [min_proposal_fee, max_proposal_fee]"
            )
        for name in ("power_quorum_ratio", "zero_quorum_ratio"):
            ratio = getattr(self, name)
            if not 0 <= ratio <= MAX_QUORUM_RATIO:
                raise ConfigurationError(f"{name} must be 0-{MAX_QUORUM_RATIO} bps, got {ratio}")
        if self.voting_period < 1:
            raise ConfigurationError("voting_period must be >= 1")
        # A passed proposal is only resolvable in [vote_end, vote_end + grace)
        if self.resolution_grace < 1:
            raise ConfigurationError("resolution_grace must be >= 1")
        if self.voting_delay < 0 or self.reward < 0:
            raise ConfigurationError("voting_delay and reward must be >= 0")
        if self.epoch_duration < 1:
            raise ConfigurationError("epoch_duration must be >= 1")


# -- Auction ------------------------------------------------------------

@dataclass
class AuctionConfig:
    """[auction] section."""
    start_price: int = DEFAULT_AUCTION_START_PRICE
    floor_price: int = DEFAULT_AUCTION_FLOOR_PRICE
    decay_duration: int = DEFAULT_AUCTION_DECAY_DURATION
    round_duration: int = DEFAULT_AUCTION_ROUND_DURATION

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuctionConfig":
        return cls(
            start_price=data.get("start_price", DEFAULT_AUCTION_START_PRICE),
            floor_price=data.get("floor_price", DEFAULT_AUCTION_FLOOR_PRICE),
            decay_duration=data.get("decay_duration", DEFAULT_AUCTION_DECAY_DURATION),
            round_duration=data.get("round_duration", DEFAULT_AUCTION_ROUND_DURATION),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("TTG_AUCTION_START_PRICE"):
            self.start_price = int(v)
        if v := os.environ.get("TTG_AUCTION_FLOOR_PRICE"):
            self.floor_price = int(v)

    def validate(self) -> None:
        if not 0 < self.floor_price <= self.start_price:
            raise ConfigurationError("Auction prices must satisfy 0 < floor_price <= start_price")
        if self.decay_duration < 1 or self.round_duration < 1:
            raise ConfigurationError("Auction durations must be >= 1")


# -- Bootstrap ----------------------------------------------------------

@dataclass
class BootstrapConfig:
    """[bootstrap] section: deployer account and initial registry contents."""
    deployer: str = "ttg-deployer"
    lists: Dict[str, List[str]] = field(default_factory=dict)
    config: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BootstrapConfig":
        return cls(
            deployer=data.get("deployer", "ttg-deployer"),
            lists={k: list(v) for k, v in data.get("lists", {}).items()},
            config=dict(data.get("config", {})),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("TTG_DEPLOYER"):
            self.deployer = v


# ---------------------------------------------------------------------------
# Top-level ProtocolConfig
# ---------------------------------------------------------------------------

@dataclass
class ProtocolConfig:
    """Complete protocol deployment configuration."""
    chain: ChainConfig = field(default_factory=ChainConfig)
    tokens: TokensConfig = field(default_factory=TokensConfig)
    governor: GovernorConfig = field(default_factory=GovernorConfig)
    auction: AuctionConfig = field(default_factory=AuctionConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolConfig":
        return cls(
            chain=ChainConfig.from_dict(data.get("chain", {})),
            tokens=TokensConfig.from_dict(data.get("tokens", {})),
            governor=GovernorConfig.from_dict(data.get("governor", {})),
            auction=AuctionConfig.from_dict(data.get("auction", {})),
            bootstrap=BootstrapConfig.from_dict(data.get("bootstrap", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "ProtocolConfig":
        """
        Load configuration from a TOML file.

        Args:
            config_path: Path to config.toml

        Returns:
            ProtocolConfig instance
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            try:
                raw = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.chain.apply_env()
        self.governor.apply_env()
        self.auction.apply_env()
        self.bootstrap.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.chain.chain_id < 1:
            raise ConfigurationError("chain_id must be >= 1")
        if self.chain.block_time < 1:
            raise ConfigurationError("block_time must be >= 1")
        for token in (self.tokens.cash, self.tokens.power, self.tokens.zero):
            token.validate()
        self.governor.validate()
        self.auction.validate()
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "chain": {
                "chain_id": self.chain.chain_id,
                "genesis_time": self.chain.genesis_time,
                "block_time": self.chain.block_time,
            },
            "tokens": {
                key: {
                    "name": token.name,
                    "symbol": token.symbol,
                    "decimals": token.decimals,
                    "holders": len(token.balances),
                }
                for key, token in (
                    ("cash", self.tokens.cash),
                    ("power", self.tokens.power),
                    ("zero", self.tokens.zero),
                )
            },
            "governor": {
                "proposal_fee": self.governor.proposal_fee,
                "min_proposal_fee": self.governor.min_proposal_fee,
                "max_proposal_fee": self.governor.max_proposal_fee,
                "reward": self.governor.reward,
                "power_quorum_ratio": self.governor.power_quorum_ratio,
                "zero_quorum_ratio": self.governor.zero_quorum_ratio,
                "voting_delay": self.governor.voting_delay,
                "voting_period": self.governor.voting_period,
                "resolution_grace": self.governor.resolution_grace,
                "epoch_duration": self.governor.epoch_duration,
                "target_proposals_per_epoch": self.governor.target_proposals_per_epoch,
            },
            "auction": {
                "start_price": self.auction.start_price,
                "floor_price": self.auction.floor_price,
                "decay_duration": self.auction.decay_duration,
                "round_duration": self.auction.round_duration,
            },
            "bootstrap": {
                "deployer": self.bootstrap.deployer,
                "lists": {k: len(v) for k, v in self.bootstrap.lists.items()},
                "config_keys": sorted(self.bootstrap.config),
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> ProtocolConfig:
    """
    Load protocol configuration.

    Resolution order:
        1. Explicit *path* argument
        2. TTG_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("TTG_CONFIG", "config.toml")

    return ProtocolConfig.from_file(path)
