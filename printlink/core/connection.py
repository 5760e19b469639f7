"""Single active connection state machine and connection recency cache."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future

from printlink.core import sgd
from printlink.core.errors import (
    AlreadyBusyError,
    ConnectionFailedError,
    NotConnectedError,
    UnavailableError,
)
from printlink.core.events import EventChannel
from printlink.core.model import ActiveConnection, ConnectionState, ConnectionStateChanged
from printlink.core.worker import SerialWorker
from printlink.transports.base import Transport
from printlink.transports.factory import normalize_address

LOGGER = logging.getLogger(__name__)

CACHE_WINDOW_S = 10.0

TransportFactoryFn = Callable[[str], Transport]
IdentityQuery = Callable[[Transport], str]


class RecencyCache:
    """Address to last-successful-connection time.

    Entries are never evicted; an entry older than the window is simply no
    longer recent. The map only grows with the number of distinct devices
    used during the process lifetime.
    """

    def __init__(self, window_s: float = CACHE_WINDOW_S) -> None:
        self.window_s = window_s
        self._last: dict[str, float] = {}

    def touch(self, address: str, now: float) -> None:
        self._last[address] = now

    def is_recent(self, address: str, now: float) -> bool:
        last = self._last.get(address)
        return last is not None and now - last < self.window_s

    def last_seen(self, address: str) -> float | None:
        return self._last.get(address)


def close_quietly(transport: Transport, address: str) -> None:
    try:
        transport.close()
    except Exception as exc:
        LOGGER.warning("Closing transport to %s failed: %s", address, exc)


class ConnectionManager:
    """Owns zero or one active connection.

    Every state change runs on the shared ``SerialWorker``; ``is_connected``
    and the properties may be read from any thread.
    """

    def __init__(
        self,
        *,
        transport_factory: TransportFactoryFn,
        events: EventChannel,
        worker: SerialWorker | None = None,
        identity_query: IdentityQuery = sgd.control_language,
        cache: RecencyCache | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport_factory = transport_factory
        self.events = events
        self.worker = worker or SerialWorker()
        self.identity_query = identity_query
        self.cache = cache or RecencyCache()
        self.clock = clock
        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._active: ActiveConnection | None = None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def active_address(self) -> str | None:
        with self._lock:
            return self._active.address if self._active else None

    def is_connected(self, address: str | None = None) -> bool:
        with self._lock:
            if self._active is None:
                return False
            return not address or self._active.address == address

    def connect(self, address: str) -> None:
        address = normalize_address(address)
        self.worker.run(self._connect, address)

    def disconnect(self, address: str | None = None) -> str:
        """Close the active connection and return the address it targeted."""
        return self.worker.run(self._disconnect, address or None)

    def handle_link_lost(self, address: str) -> Future[bool]:
        """Report an OS-level disconnect for ``address``.

        Queued behind any in-flight operation rather than rejected.
        """
        return self.worker.submit(self._link_lost, address)

    def lease(self, address: str) -> Transport | None:
        """Return the open active transport for ``address``, if any.

        Worker-thread only. A matching active connection whose transport no
        longer reports itself open is dropped here.
        """
        with self._lock:
            active = self._active
        if active is None or active.address != address:
            return None
        if active.transport.is_open:
            return active.transport
        LOGGER.warning("Active connection to %s is no longer open, dropping it", address)
        self._teardown(active, error="Connection closed unexpectedly")
        return None

    def _connect(self, address: str) -> None:
        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            raise AlreadyBusyError(
                f"Already connected or connecting to {self.active_address or 'a device'}"
            )

        self._set_state(ConnectionState.CONNECTING, address)
        transport: Transport | None = None
        try:
            transport = self.transport_factory(address)
            transport.open()
            language = self.identity_query(transport)
        except UnavailableError as exc:
            self._fail(address, transport, exc)
            raise
        except Exception as exc:
            self._fail(address, transport, exc)
            raise ConnectionFailedError(
                f"Could not connect to {address}: {exc}", detail=repr(exc)
            ) from exc

        now = self.clock()
        self.cache.touch(address, now)
        LOGGER.info("Connected to %s (language %s)", address, language)
        self._set_state(
            ConnectionState.CONNECTED,
            address,
            active=ActiveConnection(address=address, transport=transport, opened_at=now),
        )

    def _fail(self, address: str, transport: Transport | None, exc: Exception) -> None:
        LOGGER.warning("Connection to %s failed: %s", address, exc)
        if transport is not None:
            close_quietly(transport, address)
        self._set_state(ConnectionState.ERROR, address, error=str(exc))
        self._set_state(ConnectionState.DISCONNECTED, address, error=str(exc))

    def _disconnect(self, address: str | None) -> str:
        with self._lock:
            active = self._active
        if active is None:
            raise NotConnectedError("No printer is connected")
        if address is not None and active.address != address:
            raise NotConnectedError(f"Not connected to {address}")
        self._teardown(active)
        return active.address

    def _link_lost(self, address: str) -> bool:
        with self._lock:
            active = self._active
        if active is None or active.address != address:
            LOGGER.debug("Ignoring link loss for %s (not the active connection)", address)
            return False
        LOGGER.warning("Link to %s lost", address)
        self._teardown(active, error="Link lost")
        return True

    def _teardown(self, active: ActiveConnection, error: str | None = None) -> None:
        self._set_state(ConnectionState.DISCONNECTING, active.address, error=error)
        close_quietly(active.transport, active.address)
        self._set_state(ConnectionState.DISCONNECTED, active.address, error=error)

    def _set_state(
        self,
        state: ConnectionState,
        address: str | None,
        error: str | None = None,
        active: ActiveConnection | None = None,
    ) -> None:
        # the active slot is only populated while CONNECTED
        with self._lock:
            previous, self._state = self._state, state
            self._active = active if state is ConnectionState.CONNECTED else None
        LOGGER.debug("Connection state: %s -> %s (%s)", previous.name, state.name, address)
        self.events.emit(ConnectionStateChanged(address=address, state=state, error=error))
