"""Keeping the remote watch list in step with local state.

Every change is stored locally first and then pushed to the remote. When the
push fails for any transport reason the change is queued instead, replacing any
older queued change for the same series, and replayed by :meth:`flush` once
connectivity returns.

``commit`` and ``flush`` for the same series are mutually exclusive, so a
completion event can never interleave with a replay of stale state.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .logging_utils import render_fields_block
from .models import SeriesState, SeriesTrackError, SyncMutation
from .persistence import TrackerStore
from .status import StatusSettings, advance

LOGGER = logging.getLogger(__name__)

DEFAULT_PUSH_TIMEOUT = 10.0


class TransportError(SeriesTrackError):
    """The remote could not be reached or refused the update."""


class SyncInvariantError(SeriesTrackError, RuntimeError):
    """The remote acknowledged something that cannot correspond to a local change."""


class RemoteTransport(Protocol):
    def push(self, series_id: int, state: SeriesState) -> SeriesState:
        """Send ``state`` and return the state the remote acknowledged."""
        ...


class SyncOutcome(str, Enum):
    SYNCED = "synced"
    QUEUED_OFFLINE = "queued_offline"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SyncResult:
    series_id: int
    outcome: SyncOutcome
    state: SeriesState

    @property
    def synced(self) -> bool:
        return self.outcome is SyncOutcome.SYNCED


class SyncCoordinator:
    """Applies state changes locally and pushes them to a remote transport."""

    def __init__(
        self,
        transport: RemoteTransport,
        store: TrackerStore,
        *,
        push_timeout: float = DEFAULT_PUSH_TIMEOUT,
        max_workers: int = 2,
    ) -> None:
        self._transport = transport
        self._store = store
        self._push_timeout = push_timeout
        self._series_locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._flush_lock = threading.Lock()
        self._in_flight: dict[int, Future[SeriesState]] = {}
        self._push_executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sync-push")
        self._work_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sync-work")

    @property
    def store(self) -> TrackerStore:
        return self._store

    def _lock_for(self, series_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._series_locks.get(series_id)
            if lock is None:
                lock = threading.RLock()
                self._series_locks[series_id] = lock
            return lock

    def _push(self, series_id: int, state: SeriesState) -> SeriesState:
        """Push with a bounded wait; a timeout counts as a transport failure.

        A push given up on after a timeout may still be running. Nothing newer
        is sent for that series until it has finished, so the remote always
        receives a series' changes in the order they were made. Callers hold
        the series lock.
        """
        previous = self._in_flight.pop(series_id, None)
        if previous is not None:
            done, _ = wait([previous], timeout=self._push_timeout)
            if not done:
                self._in_flight[series_id] = previous
                raise TransportError(f"An earlier push for series {series_id} is still running")

        future = self._push_executor.submit(self._transport.push, series_id, state)
        try:
            acked = future.result(timeout=self._push_timeout)
        except FutureTimeoutError as exc:
            if not future.cancel():
                self._in_flight[series_id] = future
            raise TransportError(f"Push for series {series_id} timed out after {self._push_timeout:g}s") from exc
        return self._check_ack(series_id, acked)

    def _check_ack(self, series_id: int, acked: SeriesState) -> SeriesState:
        if acked.series_id != series_id:
            raise SyncInvariantError(f"Remote acknowledged series {acked.series_id} for a push of series {series_id}")
        if self._store.load_state(series_id) is None:
            raise SyncInvariantError(f"Remote acknowledged unknown series {series_id}")
        return acked

    def local_state(self, series_id: int) -> Optional[SeriesState]:
        return self._store.load_state(series_id)

    def commit(self, series_id: int, new_state: SeriesState) -> SyncResult:
        """Store ``new_state`` locally and try to push it right away."""
        if new_state.series_id != series_id:
            raise ValueError(f"State for series {new_state.series_id} committed as series {series_id}")

        with self._lock_for(series_id):
            self._store.save_state(new_state)
            try:
                acked = self._push(series_id, new_state)
            except TransportError as exc:
                mutation = self._store.enqueue(series_id, new_state)
                LOGGER.debug(
                    render_fields_block(
                        "Queued Offline Change",
                        {
                            "Series": series_id,
                            "Sequence": mutation.sequence,
                            "Reason": exc,
                            "Pending": self._store.pending_count(),
                        },
                    )
                )
                return SyncResult(series_id, SyncOutcome.QUEUED_OFFLINE, new_state)

            self._store.save_state(acked)
            self._store.discard(series_id)
            LOGGER.debug("Series %s synced (progress %d, %s)", series_id, acked.progress, acked.status.value)
            return SyncResult(series_id, SyncOutcome.SYNCED, acked)

    def record_episode_completed(
        self,
        series_id: int,
        total_episodes: Optional[int],
        settings: StatusSettings,
        *,
        today: Optional[dt.date] = None,
    ) -> SyncResult:
        """Advance the local state by one episode and commit it atomically."""
        return self.update(series_id, lambda current: advance(current, total_episodes, settings, today=today))

    def update(self, series_id: int, change: Callable[[SeriesState], SeriesState]) -> SyncResult:
        """Apply ``change`` to the stored state and commit the result as one step."""
        with self._lock_for(series_id):
            current = self._store.load_state(series_id) or SeriesState(series_id=series_id)
            return self.commit(series_id, change(current))

    def submit_commit(self, series_id: int, new_state: SeriesState) -> Future[SyncResult]:
        return self._work_executor.submit(self.commit, series_id, new_state)

    def submit_episode_completed(
        self,
        series_id: int,
        total_episodes: Optional[int],
        settings: StatusSettings,
    ) -> Future[SyncResult]:
        return self._work_executor.submit(self.record_episode_completed, series_id, total_episodes, settings)

    def flush(self, pending: Optional[Iterable[SyncMutation]] = None) -> list[tuple[int, SyncOutcome]]:
        """Replay queued changes in creation order.

        Only the newest change per series is sent. The first failure stops
        the run and leaves that change, and every later one, queued; calling
        ``flush`` again resumes from there.

        Each series is checked against the queue again under its lock: a
        series committed since the queue was read is skipped, and a newer
        queued change is sent in place of the one read earlier.
        """
        with self._flush_lock:
            from_store = pending is None
            mutations = _latest_per_series(self._store.pending() if from_store else pending)
            results: list[tuple[int, SyncOutcome]] = []

            for mutation in mutations:
                with self._lock_for(mutation.series_id):
                    # The queue may have changed since it was read
                    queued = self._store.pending_for(mutation.series_id)
                    if queued is not None and queued.sequence > mutation.sequence:
                        mutation = queued
                    elif queued is None and from_store:
                        LOGGER.debug("Series %s was synced while replaying; skipping", mutation.series_id)
                        continue

                    try:
                        acked = self._push(mutation.series_id, mutation.state)
                    except TransportError as exc:
                        LOGGER.info(
                            "Sync stopped at series %s (%s); %d change(s) still queued",
                            mutation.series_id,
                            exc,
                            self._store.pending_count(),
                        )
                        results.append((mutation.series_id, SyncOutcome.FAILED))
                        break

                    self._store.discard(mutation.series_id, up_to_sequence=mutation.sequence)
                    if self._store.pending_for(mutation.series_id) is None:
                        self._store.save_state(acked)
                    results.append((mutation.series_id, SyncOutcome.SYNCED))

            if results:
                synced = sum(1 for _, outcome in results if outcome is SyncOutcome.SYNCED)
                LOGGER.info("Replayed %d of %d queued change(s)", synced, len(mutations))
            return results

    def on_connectivity_restored(self) -> None:
        LOGGER.info("Remote reachable again; replaying %d queued change(s)", self._store.pending_count())
        self.flush()

    def pending_count(self) -> int:
        return self._store.pending_count()

    def close(self) -> None:
        self._work_executor.shutdown(wait=True)
        self._push_executor.shutdown(wait=False, cancel_futures=True)


def _latest_per_series(mutations: Iterable[SyncMutation]) -> list[SyncMutation]:
    latest: dict[int, SyncMutation] = {}
    for mutation in mutations:
        existing = latest.get(mutation.series_id)
        if existing is None or mutation.sequence > existing.sequence:
            latest[mutation.series_id] = mutation
    return sorted(latest.values(), key=lambda mutation: mutation.sequence)


__all__ = [
    "RemoteTransport",
    "SyncCoordinator",
    "SyncInvariantError",
    "SyncOutcome",
    "SyncResult",
    "TransportError",
]
