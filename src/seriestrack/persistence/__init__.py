"""Persistence layer for tracked series.

Public API:
- TrackerStore: SQLite-backed store for series configs, watch states and the
  queue of changes not yet acknowledged by the remote

Example:
    from seriestrack.persistence import TrackerStore

    store = TrackerStore(Path("/path/to/tracker.db"))
    store.save_state(SeriesState(series_id=21))
"""

from .tracker_store import TrackerStore

__all__ = ["TrackerStore"]
