"""
Ledger Runtime

The single-writer, totally ordered host every protocol component runs on:

  - Clock: block number and timestamp, advanced explicitly
  - Atomicity: every externally invoked entry point runs inside
    ``Ledger.transaction``; on any exception all participants are restored
    from the savepoint taken when that call started and the events emitted
    inside it are discarded, at every nesting level
  - Event log: append-only ``LedgerEvent`` records carrying the canonical
    Solidity event signature and its keccak topic
"""

import copy
import functools
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .constants import DEFAULT_BLOCK_TIME, DEFAULT_CHAIN_ID, DEFAULT_GENESIS_TIME
from .crypto.address import to_checksum_address
from .crypto.hashing import signature_topic
from .exceptions import ReentrantCall, TTGException
from .logger import get_logger, transaction_scope

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    """An event emitted by a ledger participant."""
    emitter: str
    name: str
    signature: str
    args: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0
    block_number: int = 0

    @property
    def topic(self) -> bytes:
        return signature_topic(self.signature)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "emitter": self.emitter,
            "signature": self.signature,
            "topic": "0x" + self.topic.hex(),
            "args": {
                k: ("0x" + v.hex()) if isinstance(v, bytes) else v
                for k, v in self.args.items()
            },
            "timestamp": self.timestamp,
            "blockNumber": self.block_number,
        }


class Ledger:
    """
    In-process ledger providing ordering, time and all-or-nothing execution.
    """

    def __init__(
        self,
        chain_id: int = DEFAULT_CHAIN_ID,
        timestamp: int = DEFAULT_GENESIS_TIME,
        block_time: int = DEFAULT_BLOCK_TIME,
    ):
        self.chain_id = chain_id
        self.timestamp = timestamp
        self.block_number = 0
        self.block_time = block_time
        self._participants: Dict[str, "LedgerParticipant"] = {}
        self._events: List[LedgerEvent] = []
        self._depth = 0

    # ── Participants ──────────────────────────────────────────────────

    def register(self, participant: "LedgerParticipant") -> None:
        if participant.address in self._participants:
            raise TTGException(f"Address {participant.address} is already in use")
        self._participants[participant.address] = participant

    def get(self, address: str) -> Optional["LedgerParticipant"]:
        return self._participants.get(to_checksum_address(address))

    @property
    def participants(self) -> List["LedgerParticipant"]:
        return list(self._participants.values())

    # ── Clock ─────────────────────────────────────────────────────────

    def mine(self, blocks: int = 1) -> int:
        """Produce *blocks* empty blocks, advancing time by ``block_time`` each."""
        if blocks < 1:
            raise ValueError("Must mine at least one block")
        self.block_number += blocks
        self.timestamp += blocks * self.block_time
        return self.block_number

    def advance_time(self, seconds: int) -> int:
        """Jump *seconds* ahead in a single new block."""
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        self.block_number += 1
        self.timestamp += seconds
        return self.timestamp

    def warp(self, timestamp: int) -> int:
        """Jump to an absolute *timestamp* in a single new block."""
        return self.advance_time(timestamp - self.timestamp)

    # ── Atomic execution ──────────────────────────────────────────────

    @contextmanager
    def transaction(self, label: str = "") -> Iterator[None]:
        """
        Run the enclosed block atomically.

        Every level takes its own savepoint, so a failed nested call is
        undone even when its caller catches the exception. Only the
        outermost level names the log context.
        """
        savepoint = self._savepoint()
        outermost = self._depth == 0
        self._depth += 1
        try:
            if outermost:
                with transaction_scope(label):
                    yield
            else:
                yield
        except Exception as e:
            self._rollback(savepoint)
            logger.debug(f"Reverted {label or 'transaction'}: {type(e).__name__}: {e}")
            raise
        finally:
            self._depth -= 1

    def _savepoint(self) -> Tuple[Dict[str, Dict[str, Any]], int]:
        snapshots = {
            address: participant.take_snapshot()
            for address, participant in self._participants.items()
        }
        return snapshots, len(self._events)

    def _rollback(self, savepoint: Tuple[Dict[str, Dict[str, Any]], int]) -> None:
        snapshots, event_mark = savepoint
        for address in list(self._participants):
            if address not in snapshots:
                del self._participants[address]
        for address, snapshot in snapshots.items():
            self._participants[address].restore_snapshot(snapshot)
        del self._events[event_mark:]

    # ── Events ────────────────────────────────────────────────────────

    def emit(self, emitter: str, name: str, signature: str, args: Dict[str, Any]) -> LedgerEvent:
        event = LedgerEvent(
            emitter=emitter,
            name=name,
            signature=signature,
            args=dict(args),
            timestamp=self.timestamp,
            block_number=self.block_number,
        )
        self._events.append(event)
        return event

    def events(self, name: Optional[str] = None, emitter: Optional[str] = None) -> List[LedgerEvent]:
        return [
            e for e in self._events
            if (name is None or e.name == name)
            and (emitter is None or e.emitter == emitter)
        ]

    def __repr__(self) -> str:
        return (
            f"<Ledger chain={self.chain_id} block={self.block_number} "
            f"t={self.timestamp} participants={len(self._participants)}>"
        )


class LedgerParticipant:
    """
    Base for components whose state lives on the ledger.

    Subclasses list the attributes holding their persistent state in
    ``_snapshot_fields``; those attributes must not reference other
    participants or the ledger itself.
    """

    _snapshot_fields: Tuple[str, ...] = ()

    def __init__(self, ledger: Ledger, address: str):
        self.ledger = ledger
        self.address = to_checksum_address(address)
        self._entered = False
        ledger.register(self)

    @property
    def now(self) -> int:
        return self.ledger.timestamp

    def take_snapshot(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self._snapshot_fields}

    def restore_snapshot(self, snapshot: Dict[str, Any]) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    def _emit(self, name: str, signature: str, **args: Any) -> LedgerEvent:
        return self.ledger.emit(self.address, name, signature, args)


def atomic(method):
    """Run a participant method inside a ledger transaction."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.ledger.transaction(f"{type(self).__name__}.{method.__name__}"):
            return method(self, *args, **kwargs)
    return wrapper


def non_reentrant(method):
    """Reject re-entry into any guarded method of the same participant."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise ReentrantCall(f"{type(self).__name__}.{method.__name__} re-entered")
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False
    return wrapper
