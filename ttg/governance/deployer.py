"""
Governor Deployer

Deploys DualGovernor instances at predictable CREATE-style addresses so
that the registrar and vault can be constructed with the governor's
address before the governor itself exists.

The deployer keeps only addresses of its collaborators and resolves them
through the ledger at deploy time.
"""

from typing import Any, Dict, List

from ..constants import (
    DEFAULT_EPOCH_DURATION,
    DEFAULT_RESOLUTION_GRACE,
    DEFAULT_TARGET_PROPOSALS_PER_EPOCH,
    DEFAULT_VOTING_DELAY,
    DEFAULT_VOTING_PERIOD,
)
from ..crypto.address import generate_contract_address, to_checksum_address
from ..exceptions import ConfigurationError, Unauthorized
from ..ledger import Ledger, LedgerParticipant, atomic
from ..logger import get_logger
from .governor import DualGovernor

logger = get_logger(__name__)


class GovernorDeployer(LedgerParticipant):
    """Factory for DualGovernor; only the admin may deploy."""

    _snapshot_fields = ("nonce", "_deployed")

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        admin: str,
        registrar: str,
        vault: str,
        zero_token: str,
        voting_delay: int = DEFAULT_VOTING_DELAY,
        voting_period: int = DEFAULT_VOTING_PERIOD,
        resolution_grace: int = DEFAULT_RESOLUTION_GRACE,
        epoch_duration: int = DEFAULT_EPOCH_DURATION,
        target_proposals: int = DEFAULT_TARGET_PROPOSALS_PER_EPOCH,
    ):
        super().__init__(ledger, address)
        self.admin = to_checksum_address(admin)
        self.registrar = to_checksum_address(registrar)
        self.vault = to_checksum_address(vault)
        self.zero_token = to_checksum_address(zero_token)
        self.voting_delay = voting_delay
        self.voting_period = voting_period
        self.resolution_grace = resolution_grace
        self.epoch_duration = epoch_duration
        self.target_proposals = target_proposals

        self.nonce = 0
        self._deployed: List[str] = []

    def next_deploy_address(self) -> str:
        """Address the next call to deploy() will use."""
        return generate_contract_address(self.address, self.nonce)

    @property
    def last_deploy(self) -> str:
        return self._deployed[-1] if self._deployed else ""

    def _resolve(self, address: str, what: str):
        participant = self.ledger.get(address)
        if participant is None:
            raise ConfigurationError(f"No {what} deployed at {address}")
        return participant

    @atomic
    def deploy(
        self,
        caller: str,
        cash_token: str,
        power_token: str,
        proposal_fee: int,
        min_fee: int,
        max_fee: int,
        reward: int,
        power_quorum_ratio: int,
        zero_quorum_ratio: int,
    ) -> str:
        """
        Deploy a governor wired to the registrar, vault and zero token.

        The registrar and vault are bound to a single governor address at
        construction (the first deploy at bootstrap). Governors deployed
        later can take proposals and votes but the registrar rejects
        their mutations with Unauthorized.

        Returns:
            The new governor's address.
        """
        if to_checksum_address(caller) != self.admin:
            raise Unauthorized(caller, "deploy governors")

        address = self.next_deploy_address()
        self.nonce += 1

        governor = DualGovernor(
            self.ledger,
            address,
            registrar=self._resolve(self.registrar, "registrar"),
            vault=self._resolve(self.vault, "vault"),
            cash_token=self._resolve(cash_token, "cash token"),
            power_token=self._resolve(power_token, "power token"),
            zero_token=self._resolve(self.zero_token, "zero token"),
            proposal_fee=proposal_fee,
            min_fee=min_fee,
            max_fee=max_fee,
            reward=reward,
            power_quorum_ratio=power_quorum_ratio,
            zero_quorum_ratio=zero_quorum_ratio,
            voting_delay=self.voting_delay,
            voting_period=self.voting_period,
            resolution_grace=self.resolution_grace,
            epoch_duration=self.epoch_duration,
            target_proposals=self.target_proposals,
        )
        self._deployed.append(governor.address)
        logger.info(f"GovernorDeployer: governor #{self.nonce} deployed at {governor.address}")
        return governor.address

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "registrar": self.registrar,
            "vault": self.vault,
            "zeroToken": self.zero_token,
            "nonce": self.nonce,
            "nextDeploy": self.next_deploy_address(),
            "deployed": list(self._deployed),
        }

    def __repr__(self) -> str:
        return f"<GovernorDeployer at {self.address} nonce={self.nonce}>"
