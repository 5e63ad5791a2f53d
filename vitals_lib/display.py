"""Thread-safe display slots for rendered sensor values and port status."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

STATUS_SLOT = "status"


@dataclass(frozen=True)
class DisplayUpdate:
    """One change pushed to a named slot.

    Attributes:
        seq: Monotonic sequence number, starting at 1.
        slot: Sensor key or STATUS_SLOT.
        text: Rendered text.
    """

    seq: int
    slot: str
    text: str


class DisplayBoard:
    """Named text slots (one per sensor key plus a status slot).

    Written by the controller's event worker, read by the HTTP layer.
    Recent updates are kept in a bounded FIFO so streaming clients can
    catch up from their last seen sequence number.
    """

    def __init__(self, history: int = 256) -> None:
        """Initialize empty board.

        Args:
            history: Number of recent updates retained. Defaults to 256.
        """
        if history <= 0:
            raise ValueError(f"history must be positive, got {history}")

        self._slots: Dict[str, str] = {}
        self._updates: Deque[DisplayUpdate] = deque(maxlen=history)
        self._seq = 0
        self._lock = threading.Lock()

    def set(self, slot: str, text: str) -> None:
        """Render text into a slot (thread-safe)."""
        with self._lock:
            self._seq += 1
            self._slots[str(slot)] = text
            self._updates.append(DisplayUpdate(self._seq, str(slot), text))
        logger.debug(f"Display {slot} <- {text!r}")

    def set_status(self, text: str) -> None:
        self.set(STATUS_SLOT, text)

    def get(self, slot: str, default: str = "") -> str:
        with self._lock:
            return self._slots.get(str(slot), default)

    @property
    def status(self) -> str:
        return self.get(STATUS_SLOT)

    def snapshot(self) -> Dict[str, str]:
        """Copy of all slots (thread-safe)."""
        with self._lock:
            return dict(self._slots)

    def updates_since(self, seq: int) -> List[DisplayUpdate]:
        """Updates newer than seq, oldest first (thread-safe)."""
        with self._lock:
            return [u for u in self._updates if u.seq > seq]

    @property
    def seq(self) -> int:
        """Sequence number of the latest update."""
        with self._lock:
            return self._seq


class StoredValues:
    """Last successfully rendered text per sensor key.

    Kept for the whole wizard session. Values delivered as the sibling of
    a combined request are marked so they can be shown later without
    asking the device again.
    """

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}
        self._companions: Set[str] = set()
        self._lock = threading.Lock()

    def put(self, key: str, text: str, companion: bool = False) -> None:
        with self._lock:
            self._values[str(key)] = text
            if companion:
                self._companions.add(str(key))
            else:
                self._companions.discard(str(key))

    def from_companion(self, key: str) -> bool:
        """True if the stored value for key came from a sibling's request."""
        with self._lock:
            return str(key) in self._companions

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(str(key))

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return str(key) in self._values

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._companions.clear()
