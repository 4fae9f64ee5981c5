"""Per-slot booking gate."""

import logging
from contextlib import asynccontextmanager
from threading import Lock

from backend.core.errors import SlotBusyError

logger = logging.getLogger(__name__)


class SlotGate:
    """In-process registry of slot ids that have a booking in flight.

    Acquisition never waits: a second attempt on a held slot fails with
    ``SlotBusyError`` and the caller retries later. Different slot ids never
    block each other. The gate only covers the current process; across
    instances the backend transaction is the only guard.

    One gate is created at application startup and cleared at shutdown.
    """

    def __init__(self):
        self._held: set[str] = set()
        self._lock = Lock()

    def acquire(self, slot_id: str) -> None:
        with self._lock:
            if slot_id in self._held:
                raise SlotBusyError(slot_id)
            self._held.add(slot_id)
        logger.debug('Gate acquired for slot %s', slot_id)

    def release(self, slot_id: str) -> None:
        with self._lock:
            self._held.discard(slot_id)
        logger.debug('Gate released for slot %s', slot_id)

    def is_held(self, slot_id: str) -> bool:
        with self._lock:
            return slot_id in self._held

    def clear(self) -> None:
        with self._lock:
            self._held.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._held)

    @asynccontextmanager
    async def hold(self, slot_id: str):
        """Hold the slot for the duration of the block, releasing on every exit."""
        self.acquire(slot_id)
        try:
            yield
        finally:
            self.release(slot_id)
