"""Remote transports for pushing watch-list entries."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Optional

import httpx

from .models import SeriesState
from .sync import TransportError

LOGGER = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF = 1.0
MAX_BACKOFF = 30.0

ConnectivityListener = Callable[[], None]


class TransportAuthError(TransportError):
    """The remote rejected our credentials (401/403)."""


class HttpTransport:
    """Pushes series states to a JSON HTTP endpoint.

    ``PUT {base_url}/entries/{series_id}`` carries the state as JSON and the
    response body is the acknowledged state. Transient failures (connection
    errors, 429 and 5xx responses) are retried with exponential backoff;
    anything still failing is raised as :class:`TransportError` so the caller
    can queue the change.

    Listeners registered with :meth:`add_connectivity_listener` are called
    whenever a push succeeds after a failed one.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = MAX_RETRIES,
        backoff: float = RETRY_BACKOFF,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._max_retries = max(1, max_retries)
        self._backoff = backoff
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(timeout=timeout, headers=headers)
        self._online = True
        self._listeners: list[ConnectivityListener] = []
        self._state_lock = threading.Lock()

    @property
    def online(self) -> bool:
        return self._online

    def add_connectivity_listener(self, listener: ConnectivityListener) -> None:
        self._listeners.append(listener)

    def _set_online(self, online: bool) -> None:
        with self._state_lock:
            restored = online and not self._online
            self._online = online
        if not restored:
            return
        LOGGER.info("Remote %s is reachable again", self.base_url)
        for listener in list(self._listeners):
            # Listeners typically replay the offline queue on another thread
            threading.Thread(target=listener, name="connectivity-listener", daemon=True).start()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        last_exception: Exception | None = None
        backoff = self._backoff

        for attempt in range(self._max_retries):
            try:
                response = self._client.request(method, url, **kwargs)
                if response.status_code in (401, 403):
                    raise TransportAuthError(f"Remote rejected credentials ({response.status_code}) for {path}")
                if response.status_code == 429:
                    retry_after = float(response.headers.get("Retry-After", backoff))
                    LOGGER.warning("Rate limited by remote, waiting %.0f seconds", retry_after)
                    last_exception = TransportError(f"Rate limited on {path}")
                    if attempt < self._max_retries - 1:
                        time.sleep(retry_after)
                        backoff = min(backoff * 2, MAX_BACKOFF)
                    continue
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    raise TransportError(f"Remote refused update for {path}: {exc.response.status_code}") from exc
                last_exception = exc
            except httpx.RequestError as exc:
                last_exception = exc

            if attempt < self._max_retries - 1:
                LOGGER.debug("Request failed (attempt %d/%d): %s", attempt + 1, self._max_retries, last_exception)
                time.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)

        raise TransportError(f"Request to {path} failed after {self._max_retries} attempts: {last_exception}")

    def push(self, series_id: int, state: SeriesState) -> SeriesState:
        try:
            response = self._request("PUT", f"/entries/{series_id}", json=state.to_dict())
            acked = SeriesState.from_dict(response.json())
        except TransportError:
            self._set_online(False)
            raise
        except (TypeError, ValueError) as exc:
            self._set_online(False)
            raise TransportError(f"Remote sent an unreadable acknowledgement for series {series_id}: {exc}") from exc

        self._set_online(True)
        return acked

    def close(self) -> None:
        self._client.close()


class OfflineTransport:
    """Transport used in offline mode; every push is deferred."""

    online = False

    def push(self, series_id: int, state: SeriesState) -> SeriesState:
        raise TransportError("Offline mode: change queued for a later sync")

    def close(self) -> None:
        return None


__all__ = ["HttpTransport", "OfflineTransport", "TransportAuthError"]
