"""Single-flight execution of writes, keyed by document path."""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Flight(Generic[T]):
    fingerprint: str
    task: "asyncio.Task[T]"


class SingleFlight:
    """At most one operation in flight per key.

    Submitting work whose fingerprint matches the in-flight operation joins
    it. Different work supersedes it: the old task is cancelled (aborting
    any pending request) and the new one starts only after every earlier
    task for the key has settled, so two operations never run against the
    same key at once. A superseded task resolves to ``superseded_result()``
    instead of raising CancelledError into whoever awaits it.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, _Flight] = {}
        self._pending: dict[str, set[asyncio.Task]] = {}
        self._started: set[asyncio.Task] = set()
        self._superseded: set[asyncio.Task] = set()

    def in_flight(self, key: str) -> bool:
        flight = self._inflight.get(key)
        return flight is not None and not flight.task.done()

    def submit(
        self,
        key: str,
        fingerprint: str,
        factory: Callable[[], Awaitable[T]],
        superseded_result: Callable[[], T],
    ) -> "asyncio.Task[T]":
        """Run ``factory()`` for ``key`` under single-flight rules."""
        flight = self._inflight.get(key)

        if flight is not None and not flight.task.done():
            if flight.fingerprint == fingerprint:
                logger.debug(f"Joining in-flight operation for {key}")
                return flight.task

            logger.debug(f"Superseding in-flight operation for {key}")
            self._superseded.add(flight.task)
            if flight.task in self._started:
                flight.task.cancel()

        # Wait on every unsettled predecessor, not only the latest: a
        # superseded task may return before the one it replaced has unwound
        previous = {t for t in self._pending.get(key, ()) if not t.done()}

        task = asyncio.create_task(self._run(previous, factory, superseded_result))
        self._inflight[key] = _Flight(fingerprint=fingerprint, task=task)
        self._pending.setdefault(key, set()).add(task)
        task.add_done_callback(functools.partial(self._finished, key))
        return task

    async def _run(
        self,
        previous: "set[asyncio.Task]",
        factory: Callable[[], Awaitable[T]],
        superseded_result: Callable[[], T],
    ) -> T:
        task = asyncio.current_task()
        self._started.add(task)
        if task in self._superseded:
            # Superseded before it ever ran
            return superseded_result()

        try:
            if previous:
                await asyncio.wait(previous)
            return await factory()
        except asyncio.CancelledError:
            if task in self._superseded:
                return superseded_result()
            raise

    def _finished(self, key: str, task: asyncio.Task) -> None:
        self._superseded.discard(task)
        self._started.discard(task)

        pending = self._pending.get(key)
        if pending is not None:
            pending.discard(task)
            if not pending:
                del self._pending[key]

        flight = self._inflight.get(key)
        if flight is not None and flight.task is task:
            del self._inflight[key]

    async def wait(self, key: str) -> None:
        """Wait until every operation submitted for ``key`` has settled."""
        pending = [t for t in self._pending.get(key, ()) if not t.done()]
        if pending:
            await asyncio.wait(pending)

    async def cancel_all(self) -> None:
        """Cancel every in-flight operation and wait for them to settle."""
        tasks = [t for pending in self._pending.values() for t in pending if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
