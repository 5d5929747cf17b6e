"""
Address Registrar

Sole source of truth for named address lists and the flat bytes32 config
store. Every mutation must come from the governor:

  - add_to_list / remove_from_list   idempotent, events only on change
  - update_config                    last-write-wins
  - reset                            swap in fresh lists built from the
                                     bootstrap membership and config

Lookups never fail: unknown config keys read as zero and unknown lists
contain nobody.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..constants import ZERO_BYTES32
from ..crypto.address import to_checksum_address
from ..crypto.encoding import Bytes32Like, bytes32_to_str, to_bytes32
from ..exceptions import Unauthorized
from ..ledger import Ledger, LedgerParticipant, atomic
from ..logger import get_logger
from .lists import AddressList, ListFactory

logger = get_logger(__name__)


ADDRESS_ADDED_EVENT = "AddressAddedToList(bytes32,address)"
ADDRESS_REMOVED_EVENT = "AddressRemovedFromList(bytes32,address)"
CONFIG_UPDATED_EVENT = "ConfigUpdated(bytes32,bytes32)"
RESET_EXECUTED_EVENT = "ResetExecuted()"


class AuthorizedMutator(Protocol):
    """Registry capability the governor is handed at construction."""

    address: str

    def add_to_list(self, caller: str, list_name: Bytes32Like, account: str) -> None: ...

    def remove_from_list(self, caller: str, list_name: Bytes32Like, account: str) -> None: ...

    def update_config(self, caller: str, key: Bytes32Like, value: Bytes32Like) -> None: ...

    def reset(self, caller: str) -> None: ...


class Registrar(LedgerParticipant):
    """
    list name → AddressList, and key → value config.

    Lists are created through the ListFactory with the registrar as their
    admin; the registrar is the only holder of the list objects.
    """

    _snapshot_fields = ("_lists", "_config")

    def __init__(
        self,
        ledger: Ledger,
        address: str,
        governor: str,
        governor_deployer: str,
        zero_token: str,
        list_factory: ListFactory,
        bootstrap_lists: Optional[Mapping[Bytes32Like, Iterable[str]]] = None,
        bootstrap_config: Optional[Mapping[Bytes32Like, Bytes32Like]] = None,
    ):
        super().__init__(ledger, address)
        self.governor = to_checksum_address(governor)
        self.governor_deployer = to_checksum_address(governor_deployer)
        self.zero_token = to_checksum_address(zero_token)
        self._factory = list_factory

        # Captured once at deployment; reset() restores exactly this
        self._bootstrap_lists: Dict[bytes, Tuple[str, ...]] = {
            to_bytes32(name): tuple(sorted(to_checksum_address(a) for a in members))
            for name, members in (bootstrap_lists or {}).items()
        }
        self._bootstrap_config: Dict[bytes, bytes] = {
            to_bytes32(k): to_bytes32(v) for k, v in (bootstrap_config or {}).items()
        }

        self._lists: Dict[bytes, AddressList] = {}
        self._config: Dict[bytes, bytes] = dict(self._bootstrap_config)
        self._lists = self._build_bootstrap_lists()

        logger.info(
            f"Registrar deployed at {self.address} (governor={self.governor}, "
            f"{len(self._lists)} lists, {len(self._config)} config keys)"
        )

    def _build_bootstrap_lists(self) -> Dict[bytes, AddressList]:
        return {
            name: self._factory.create_list(self.address, name, members)
            for name, members in self._bootstrap_lists.items()
        }

    def _require_governor(self, caller: str, action: str) -> None:
        if to_checksum_address(caller) != self.governor:
            logger.warning(f"Registrar: rejected {action} from {caller}")
            raise Unauthorized(caller, action)

    # ── Config lookups ────────────────────────────────────────────────

    def get(self, key: Bytes32Like) -> bytes:
        return self._config.get(to_bytes32(key), ZERO_BYTES32)

    def get_many(self, keys: Sequence[Bytes32Like]) -> List[bytes]:
        return [self.get(key) for key in keys]

    # ── List lookups ──────────────────────────────────────────────────

    def list_contains(self, list_name: Bytes32Like, account: str) -> bool:
        address_list = self._lists.get(to_bytes32(list_name))
        return address_list is not None and address_list.contains(account)

    def list_contains_all(self, list_name: Bytes32Like, accounts: Sequence[str]) -> bool:
        """True only if every account is a member; an empty batch is vacuously true."""
        return all(self.list_contains(list_name, account) for account in accounts)

    def list_address(self, list_name: Bytes32Like) -> Optional[str]:
        address_list = self._lists.get(to_bytes32(list_name))
        return address_list.address if address_list else None

    def list_members(self, list_name: Bytes32Like) -> List[str]:
        address_list = self._lists.get(to_bytes32(list_name))
        return sorted(address_list) if address_list else []

    def list_names(self) -> List[bytes]:
        return list(self._lists)

    # ── Governor-only mutations ───────────────────────────────────────

    @atomic
    def add_to_list(self, caller: str, list_name: Bytes32Like, account: str) -> None:
        self._require_governor(caller, "add to list")
        name = to_bytes32(list_name)
        account = to_checksum_address(account)

        address_list = self._lists.get(name)
        if address_list is None:
            address_list = self._factory.create_list(self.address, name)
            self._lists[name] = address_list

        if address_list.add(self.address, account):
            self._emit("AddressAddedToList", ADDRESS_ADDED_EVENT, list_name=name, account=account)
            logger.info(f"Registrar: {account} added to {bytes32_to_str(name)!r}")

    @atomic
    def remove_from_list(self, caller: str, list_name: Bytes32Like, account: str) -> None:
        self._require_governor(caller, "remove from list")
        name = to_bytes32(list_name)
        account = to_checksum_address(account)

        address_list = self._lists.get(name)
        if address_list is not None and address_list.remove(self.address, account):
            self._emit("AddressRemovedFromList", ADDRESS_REMOVED_EVENT, list_name=name, account=account)
            logger.info(f"Registrar: {account} removed from {bytes32_to_str(name)!r}")

    @atomic
    def update_config(self, caller: str, key: Bytes32Like, value: Bytes32Like) -> None:
        self._require_governor(caller, "update config")
        key, value = to_bytes32(key), to_bytes32(value)
        self._config[key] = value
        self._emit("ConfigUpdated", CONFIG_UPDATED_EVENT, key=key, value=value)
        logger.info(f"Registrar: config {bytes32_to_str(key)!r} updated")

    @atomic
    def reset(self, caller: str) -> None:
        """Replace every list and config entry with the bootstrap snapshot."""
        self._require_governor(caller, "reset")
        fresh_lists = self._build_bootstrap_lists()
        self._lists = fresh_lists
        self._config = dict(self._bootstrap_config)
        self._emit("ResetExecuted", RESET_EXECUTED_EVENT)
        logger.warning(f"Registrar: reset to bootstrap state ({len(fresh_lists)} lists)")

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "governor": self.governor,
            "governorDeployer": self.governor_deployer,
            "zeroToken": self.zero_token,
            "lists": {
                bytes32_to_str(name): address_list.to_dict()
                for name, address_list in self._lists.items()
            },
            "config": {
                "0x" + key.hex(): "0x" + value.hex() for key, value in self._config.items()
            },
        }

    def __repr__(self) -> str:
        return f"<Registrar at {self.address} lists={len(self._lists)} config={len(self._config)}>"
