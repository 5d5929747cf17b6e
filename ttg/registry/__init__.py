"""
TTG Registry

Provides:
  - AddressList / ListFactory                    (lists.py)
  - Registrar / AuthorizedMutator                (registrar.py)
"""

from .lists import AddressList, ListFactory
from .registrar import (
    ADDRESS_ADDED_EVENT,
    ADDRESS_REMOVED_EVENT,
    CONFIG_UPDATED_EVENT,
    RESET_EXECUTED_EVENT,
    AuthorizedMutator,
    Registrar,
)

__all__ = [
    # Lists
    "AddressList",
    "ListFactory",
    # Registrar
    "AuthorizedMutator",
    "Registrar",
    # Events
    "ADDRESS_ADDED_EVENT",
    "ADDRESS_REMOVED_EVENT",
    "CONFIG_UPDATED_EVENT",
    "RESET_EXECUTED_EVENT",
]
