"""
Snapshot Change Channel

Publish/subscribe channel carrying "snapshot changed" notices between engine
instances sharing one SnapshotStore. A notice only says that a record was
rewritten; subscribers re-read the store to pick up the new state.

Key patterns:
- SnapshotNotice: (key, source_id, changed_at)
- SnapshotListener: protocol for notice handlers
- InMemorySnapshotChannel: in-process fan-out; a failing listener is logged
  and does not stop delivery to the others
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Protocol, Union, runtime_checkable

from loguru import logger

logger = logger.bind(component="SnapshotChannel")


@dataclass(slots=True, frozen=True)
class SnapshotNotice:
    """A record was rewritten by source_id at changed_at."""

    key: str
    source_id: str
    changed_at: datetime


@runtime_checkable
class SnapshotListener(Protocol):
    """Protocol for snapshot notice handlers."""

    def on_snapshot_notice(self, notice: SnapshotNotice) -> None:
        """Handle snapshot notice."""
        ...


Listener = Union[SnapshotListener, Callable[[SnapshotNotice], None]]


@runtime_checkable
class SnapshotChannel(Protocol):
    """Protocol for notice transports."""

    def publish(self, notice: SnapshotNotice) -> None:
        ...

    def subscribe(self, listener: Listener) -> None:
        ...

    def unsubscribe(self, listener: Listener) -> None:
        ...


class InMemorySnapshotChannel:
    """Deliver notices synchronously to every subscriber in this process."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        """
        Register a listener.

        Args:
            listener: SnapshotListener or plain callable taking a notice
        """
        if listener not in self._listeners:
            self._listeners.append(listener)
            logger.debug(f"Registered listener: {_name(listener)}")

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, notice: SnapshotNotice) -> None:
        for listener in list(self._listeners):
            try:
                if isinstance(listener, SnapshotListener):
                    listener.on_snapshot_notice(notice)
                else:
                    listener(notice)
            except Exception as e:
                logger.error(f"Listener {_name(listener)} failed on {notice.key}: {e}")

    def __len__(self) -> int:
        return len(self._listeners)


def _name(listener: Listener) -> str:
    return getattr(listener, "__qualname__", listener.__class__.__name__)
