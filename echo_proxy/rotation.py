"""Round-robin cursors for client personas and mirror instances."""

import threading
from typing import Generic, Iterable, Optional, Tuple, TypeVar

from .models import CLIENT_IDENTITIES

T = TypeVar("T")


class RoundRobin(Generic[T]):
    """Cycles through a fixed, ordered list of items."""

    def __init__(self, items: Iterable[T], start: int = 0) -> None:
        self.items: Tuple[T, ...] = tuple(items)
        if not self.items:
            raise ValueError("RoundRobin needs at least one item")
        self._position = start % len(self.items)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.items)

    @property
    def position(self) -> int:
        return self._position

    def next(self) -> T:
        """Return the item at the cursor, then advance it."""
        with self._lock:
            item = self.items[self._position]
            self._position = (self._position + 1) % len(self.items)
        return item


class ClientRotation(RoundRobin[str]):
    """Distributes primary upstream requests across client personas."""

    def __init__(self, identities: Optional[Iterable[str]] = None, start: int = 0) -> None:
        super().__init__(CLIENT_IDENTITIES if identities is None else identities, start)
