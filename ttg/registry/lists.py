"""
Address Lists

AddressList is a named set of addresses whose mutation is restricted to a
single admin (the registrar). ListFactory hands out fresh lists at
CREATE-style addresses derived from the factory's own address and nonce,
so no two lists ever share an address or an instance.
"""

from typing import Any, Dict, Iterable, Iterator, List, Set

from ..crypto.address import generate_contract_address, to_checksum_address
from ..crypto.encoding import Bytes32Like, bytes32_to_str, to_bytes32
from ..exceptions import Unauthorized
from ..ledger import Ledger, LedgerParticipant, atomic
from ..logger import get_logger

logger = get_logger(__name__)


class AddressList:
    """
    Set of addresses with O(1) membership.

    Holds plain data only so it can be snapshotted together with the
    registrar that owns it.
    """

    def __init__(self, address: str, admin: str, name: Bytes32Like, members: Iterable[str] = ()):
        self.address = to_checksum_address(address)
        self.admin = to_checksum_address(admin)
        self.name = to_bytes32(name)
        self._members: Set[str] = {to_checksum_address(m) for m in members}

    def _require_admin(self, caller: str) -> None:
        if to_checksum_address(caller) != self.admin:
            raise Unauthorized(caller, f"modify list {bytes32_to_str(self.name)!r}")

    def add(self, caller: str, account: str) -> bool:
        """Add *account*. Returns False when it was already a member."""
        self._require_admin(caller)
        account = to_checksum_address(account)
        if account in self._members:
            return False
        self._members.add(account)
        return True

    def remove(self, caller: str, account: str) -> bool:
        """Remove *account*. Returns False when it was not a member."""
        self._require_admin(caller)
        account = to_checksum_address(account)
        if account not in self._members:
            return False
        self._members.discard(account)
        return True

    def contains(self, account: str) -> bool:
        return to_checksum_address(account) in self._members

    def __contains__(self, account: str) -> bool:
        return self.contains(account)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._members))

    def __len__(self) -> int:
        return len(self._members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": bytes32_to_str(self.name),
            "admin": self.admin,
            "members": sorted(self._members),
        }

    def __repr__(self) -> str:
        return f"<AddressList {bytes32_to_str(self.name)!r} at {self.address} size={len(self)}>"


class ListFactory(LedgerParticipant):
    """
    Creates independent AddressList instances at deterministic addresses.

    Only the deployment nonce and the addresses handed out are persisted;
    the lists themselves belong to whoever requested them.
    """

    _snapshot_fields = ("nonce", "_deployed")

    def __init__(self, ledger: Ledger, address: str):
        super().__init__(ledger, address)
        self.nonce = 0
        self._deployed: List[str] = []

    def next_list_address(self) -> str:
        return generate_contract_address(self.address, self.nonce)

    @atomic
    def create_list(self, admin: str, name: Bytes32Like, members: Iterable[str] = ()) -> AddressList:
        address = self.next_list_address()
        self.nonce += 1
        self._deployed.append(address)

        address_list = AddressList(address, admin, name, members)
        logger.debug(
            f"List {bytes32_to_str(address_list.name)!r} created at {address} "
            f"({len(address_list)} members)"
        )
        return address_list

    @property
    def deployed(self) -> List[str]:
        return list(self._deployed)

    def __repr__(self) -> str:
        return f"<ListFactory at {self.address} nonce={self.nonce}>"
