"""Completion notification for migration runs.

Lets other parts of an application wait until a database's migrations
have finished before they touch it. Waiters may live on any event loop or
thread; all bookkeeping happens under one lock and futures are resolved
on their own loop.
"""

import asyncio
import logging
import threading
from collections.abc import Iterable
from typing import Optional

from .base import MigrationCompleted

logger = logging.getLogger(__name__)


def _set_result(future: asyncio.Future, event: MigrationCompleted) -> None:
    if not future.done():
        future.set_result(event)


class MigrationCompletion:
    """Tracks which databases finished migrating and wakes their waiters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._known_aliases: Optional[frozenset[str]] = None
        self._completed: dict[str, MigrationCompleted] = {}
        self._waiters: dict[str, set[asyncio.Future]] = {}

    @property
    def known_aliases(self) -> frozenset[str]:
        with self._lock:
            return self._known_aliases or frozenset()

    def set_known_aliases(self, aliases: Iterable[str]) -> None:
        """Declare the databases of the upcoming run.

        Recorded completions of a previous run are discarded.
        """
        aliases = frozenset(aliases)
        with self._lock:
            self._known_aliases = aliases
            self._completed.clear()
        logger.debug(f"Tracking completion of {len(aliases)} databases")

    def is_completed(self, alias: str) -> bool:
        with self._lock:
            return alias in self._completed

    def mark_completed(self, event: MigrationCompleted) -> None:
        """Record that a database finished and resolve everyone waiting on it."""
        with self._lock:
            self._completed[event.database_alias] = event
            waiters = self._waiters.pop(event.database_alias, set())

        for future in waiters:
            self._resolve(future, event)

        logger.debug(
            f"{event.database_alias} completed at version {event.version} "
            f"({len(waiters)} waiters)"
        )

    @staticmethod
    def _resolve(future: asyncio.Future, event: MigrationCompleted) -> None:
        loop = future.get_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            _set_result(future, event)
            return

        try:
            loop.call_soon_threadsafe(_set_result, future, event)
        except RuntimeError:
            # The waiter's loop is closed; nobody is left to wake
            logger.debug(f"Dropped completion waiter for {event.database_alias} on a closed loop")

    async def wait(
        self, alias: str, timeout: Optional[float] = None
    ) -> Optional[MigrationCompleted]:
        """Wait until the database with `alias` finished migrating.

        Args:
            alias: Database alias
            timeout: Seconds to wait (forever if None)

        Returns:
            The completion event, or None if the alias is not part of the run

        Raises:
            asyncio.TimeoutError: If the timeout expires first
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._known_aliases is None or alias not in self._known_aliases:
                return None
            completed = self._completed.get(alias)
            if completed is not None:
                return completed
            future = loop.create_future()
            self._waiters.setdefault(alias, set()).add(future)

        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            with self._lock:
                waiters = self._waiters.get(alias)
                if waiters is not None:
                    waiters.discard(future)
                    if not waiters:
                        del self._waiters[alias]
