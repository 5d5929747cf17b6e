"""
Protocol Bootstrap

Deploys a complete protocol instance onto a ledger from a ProtocolConfig:

    1. cash, power and zero tokens (initial balances minted)
    2. list factory and governor deployer
    3. auction vault and registrar, both built with the governor address
       predicted by the deployer
    4. the governor itself, which must land on the predicted address

Component addresses are derived CREATE-style from the deployer account, in
deployment order, so a given config always yields the same addresses.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .auction.vault import AuctionVault
from .config.loader import ProtocolConfig, TokenConfig
from .crypto.address import address_from_label, generate_contract_address, is_valid_address, to_checksum_address
from .crypto.encoding import address_to_bytes32, to_bytes32
from .exceptions import ConfigurationError
from .governance.deployer import GovernorDeployer
from .governance.governor import DualGovernor
from .ledger import Ledger
from .logger import get_logger
from .registry.lists import ListFactory
from .registry.registrar import Registrar
from .tokens.erc20 import Token
from .tokens.votes import VotingToken

logger = get_logger(__name__)


NETWORK_NAME = "TTG - Local Testnet"


def resolve_account(value: str) -> str:
    """Accept either an address or a human-readable account label."""
    if is_valid_address(value):
        return to_checksum_address(value)
    return address_from_label(value)


def _config_value(value: Any) -> bytes:
    if isinstance(value, str) and is_valid_address(value):
        return address_to_bytes32(value)
    return to_bytes32(value)


@dataclass
class Protocol:
    """Handles to every deployed component."""
    ledger: Ledger
    deployer: str
    cash_token: Token
    power_token: VotingToken
    zero_token: VotingToken
    list_factory: ListFactory
    governor_deployer: GovernorDeployer
    vault: AuctionVault
    registrar: Registrar
    governor: DualGovernor

    def contract_list(self) -> Dict[str, str]:
        return {
            "Cash Token": self.cash_token.address,
            "Power Token": self.power_token.address,
            "Zero Token": self.zero_token.address,
            "List Factory": self.list_factory.address,
            "Governor Deployer": self.governor_deployer.address,
            "Auction Vault": self.vault.address,
            "Registrar": self.registrar.address,
            "Dual Governor": self.governor.address,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network": NETWORK_NAME,
            "chainId": self.ledger.chain_id,
            "deployer": self.deployer,
            "contracts": self.contract_list(),
        }


def _deploy_token(cls, ledger: Ledger, address: str, cfg: TokenConfig, deployer: str):
    token = cls(ledger, address, cfg.name, cfg.symbol, cfg.decimals, admin=deployer)
    token.add_minter(deployer, deployer)
    for account, amount in cfg.balances.items():
        if amount:
            token.mint(deployer, resolve_account(account), amount)
    return token


def deploy_protocol(config: Optional[ProtocolConfig] = None, ledger: Optional[Ledger] = None) -> Protocol:
    """
    Deploy and wire every protocol component.

    A fresh ledger is created from the [chain] section unless one is given.
    One block is mined after deployment so genesis balances are already
    in the past for proposals created right away.
    """
    config = config or ProtocolConfig()
    config.validate()

    if ledger is None:
        ledger = Ledger(
            chain_id=config.chain.chain_id,
            timestamp=config.chain.genesis_time,
            block_time=config.chain.block_time,
        )

    deployer = resolve_account(config.bootstrap.deployer)
    addresses = [generate_contract_address(deployer, nonce) for nonce in range(7)]
    logger.info(f"Deploying {NETWORK_NAME} from {deployer} (chain {ledger.chain_id})")

    with ledger.transaction("deploy_protocol"):
        cash = _deploy_token(Token, ledger, addresses[0], config.tokens.cash, deployer)
        power = _deploy_token(VotingToken, ledger, addresses[1], config.tokens.power, deployer)
        zero = _deploy_token(VotingToken, ledger, addresses[2], config.tokens.zero, deployer)

        factory = ListFactory(ledger, addresses[3])
        gov = config.governor
        governor_deployer = GovernorDeployer(
            ledger,
            addresses[4],
            admin=deployer,
            registrar=addresses[6],
            vault=addresses[5],
            zero_token=zero.address,
            voting_delay=gov.voting_delay,
            voting_period=gov.voting_period,
            resolution_grace=gov.resolution_grace,
            epoch_duration=gov.epoch_duration,
            target_proposals=gov.target_proposals_per_epoch,
        )
        predicted_governor = governor_deployer.next_deploy_address()

        auction = config.auction
        vault = AuctionVault(
            ledger,
            addresses[5],
            governor=predicted_governor,
            cash_token=cash,
            payment_token=zero,
            start_price=auction.start_price,
            floor_price=auction.floor_price,
            decay_duration=auction.decay_duration,
            round_duration=auction.round_duration,
        )
        registrar = Registrar(
            ledger,
            addresses[6],
            governor=predicted_governor,
            governor_deployer=governor_deployer.address,
            zero_token=zero.address,
            list_factory=factory,
            bootstrap_lists={
                name: [resolve_account(a) for a in accounts]
                for name, accounts in config.bootstrap.lists.items()
            },
            bootstrap_config={
                key: _config_value(value) for key, value in config.bootstrap.config.items()
            },
        )

        governor_address = governor_deployer.deploy(
            deployer,
            cash_token=cash.address,
            power_token=power.address,
            proposal_fee=gov.proposal_fee,
            min_fee=gov.min_proposal_fee,
            max_fee=gov.max_proposal_fee,
            reward=gov.reward,
            power_quorum_ratio=gov.power_quorum_ratio,
            zero_quorum_ratio=gov.zero_quorum_ratio,
        )
        if governor_address != predicted_governor:
            raise ConfigurationError(
                f"Governor deployed at {governor_address}, expected {predicted_governor}"
            )
        governor = ledger.get(governor_address)
        zero.add_minter(deployer, governor.address)

    ledger.mine()

    protocol = Protocol(
        ledger=ledger,
        deployer=deployer,
        cash_token=cash,
        power_token=power,
        zero_token=zero,
        list_factory=factory,
        governor_deployer=governor_deployer,
        vault=vault,
        registrar=registrar,
        governor=governor,
    )
    for name, address in protocol.contract_list().items():
        logger.info(f"  {name:<18} {address}")
    return protocol
