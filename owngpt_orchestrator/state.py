"""
Current-model state for OwnGPT Orchestrator.

Holds the single ActiveModel record behind a reader/writer lock. Readers
(chat, status) share the lock; writers (activate, delete, resync) are
exclusive. Callers never hold the lock across Docker or HTTP calls: they
take a snapshot, release, do the slow work, then re-acquire to publish.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from .models.schemas import ActiveModel

logger = logging.getLogger("OwnGPT.Orchestrator.State")


class AsyncRWLock:
    """Reader/writer lock for asyncio tasks.

    A waiting writer blocks new readers, so a steady stream of chat
    requests cannot starve an activation.
    """

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writer_active(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self):
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._waiting_writers == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self):
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._waiting_writers -= 1
                # Wake readers held back by this writer if it was cancelled
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class ModelState:
    """Owns the current-model record and its lock."""

    def __init__(self, initial: Optional[ActiveModel] = None):
        self._current: ActiveModel = initial or ActiveModel()
        self._lock = AsyncRWLock()

    @property
    def lock(self) -> AsyncRWLock:
        return self._lock

    @property
    def current(self) -> ActiveModel:
        """Current record without locking (read-only view for logging/tests)."""
        return self._current

    async def snapshot(self) -> ActiveModel:
        """Read the current record under the shared lock."""
        async with self._lock.read():
            return self._current

    async def publish(self, record: ActiveModel) -> None:
        """Replace the current record."""
        async with self._lock.write():
            previous = self._current
            self._current = record
        logger.info(
            f"Current model: {previous.container_name or '<none>'} -> "
            f"{record.container_name or '<none>'} (running={record.is_running})"
        )

    async def reset(self) -> None:
        """Clear the current record."""
        await self.publish(ActiveModel())

    async def release_current(self) -> Optional[ActiveModel]:
        """Drop the 'current' designation without touching the container.

        Returns the record that was released, or None if nothing was running.
        """
        async with self._lock.write():
            previous = self._current
            if not (previous.is_running and previous.container_name):
                return None
            self._current = previous.model_copy(update={"is_running": False})
        logger.info(f"Released current model designation: {previous.container_name}")
        return previous

    async def reset_if_current(self, container_name: str) -> bool:
        """Clear the record only if it names the given container."""
        async with self._lock.write():
            if self._current.container_name != container_name:
                return False
            self._current = ActiveModel()
        logger.info(f"Current model {container_name} removed; record reset")
        return True
