"""Operation executor: connection selection, readiness probing and cleanup.

A logical operation (send a payload, query values) runs against an address
as follows:

1. Reuse the active connection when it targets the same address and its
   transport still reports itself open, after a short settle pause.
   Otherwise open a transient transport that this operation owns.
2. A transient transport to an address that connected successfully within
   the recency window gets a short fixed pause. Any other transient
   transport is probed up to three times with the waits in
   ``PROBE_DELAYS_S``. If every probe fails the operation still proceeds:
   plenty of printers accept jobs while rejecting the diagnostic getvar.
3. The operation is performed. Sends wait ``SEND_SETTLE_S`` afterwards so
   the device can drain the data before a transient link is closed.
4. A transient transport is closed exactly once; a reused one never is.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

from printlink.core import sgd
from printlink.core.connection import ConnectionManager, close_quietly
from printlink.core.errors import (
    ConnectionFailedError,
    OperationFailedError,
    PrintFailedError,
    PrintlinkError,
    UnavailableError,
)
from printlink.core.model import OperationResult, ReadinessOutcome
from printlink.transports.base import Transport

LOGGER = logging.getLogger(__name__)

REUSE_SETTLE_S = 0.3
WARM_DELAY_S = 0.5
PROBE_DELAYS_S = (2.0, 1.0, 0.8)
SEND_SETTLE_S = 0.5

ReadinessQuery = Callable[[Transport], str]


class Operation(Protocol):
    failure: ClassVar[type[OperationFailedError]]
    settle_s: ClassVar[float]

    def perform(self, transport: Transport) -> Any:
        ...


@dataclass(frozen=True)
class SendOperation:
    payload: bytes

    failure: ClassVar[type[OperationFailedError]] = PrintFailedError
    settle_s: ClassVar[float] = SEND_SETTLE_S

    def perform(self, transport: Transport) -> int:
        transport.write(self.payload)
        return len(self.payload)


@dataclass(frozen=True)
class QueryOperation:
    keys: tuple[str, ...]

    failure: ClassVar[type[OperationFailedError]] = OperationFailedError
    settle_s: ClassVar[float] = 0.0

    def perform(self, transport: Transport) -> dict[str, str]:
        return {key: sgd.get(transport, key) for key in self.keys}


class OperationExecutor:
    def __init__(
        self,
        connections: ConnectionManager,
        *,
        readiness_query: ReadinessQuery = sgd.friendly_name,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.connections = connections
        self.readiness_query = readiness_query
        self.sleep = sleep

    def execute(self, address: str, operation: Operation) -> OperationResult:
        return self.connections.worker.run(self._execute, address, operation)

    def _execute(self, address: str, operation: Operation) -> OperationResult:
        transport = self.connections.lease(address)
        owns_connection = transport is None
        readiness: ReadinessOutcome | None = None

        if transport is None:
            transport = self._open_transient(address)
        else:
            LOGGER.debug("Reusing active connection to %s", address)
            self.sleep(REUSE_SETTLE_S)

        try:
            if owns_connection:
                readiness = self._ensure_ready(address, transport)
            try:
                value = operation.perform(transport)
            except (PrintlinkError, OSError) as exc:
                raise operation.failure(
                    f"Operation on {address} failed: {exc}", detail=repr(exc)
                ) from exc
            if operation.settle_s:
                self.sleep(operation.settle_s)
            return OperationResult(
                value=value,
                reused_connection=not owns_connection,
                readiness=readiness,
            )
        finally:
            if owns_connection:
                close_quietly(transport, address)

    def _open_transient(self, address: str) -> Transport:
        transport = self.connections.transport_factory(address)
        try:
            transport.open()
        except UnavailableError:
            close_quietly(transport, address)
            raise
        except (PrintlinkError, OSError) as exc:
            close_quietly(transport, address)
            raise ConnectionFailedError(
                f"Could not open connection to {address}: {exc}", detail=repr(exc)
            ) from exc
        return transport

    def _ensure_ready(self, address: str, transport: Transport) -> ReadinessOutcome:
        cache = self.connections.cache
        if cache.is_recent(address, self.connections.clock()):
            self.sleep(WARM_DELAY_S)
            cache.touch(address, self.connections.clock())
            return ReadinessOutcome.WARM

        outcome = ReadinessOutcome.UNVERIFIED
        for attempt, delay in enumerate(PROBE_DELAYS_S, start=1):
            self.sleep(delay)
            try:
                name = self.readiness_query(transport)
            except Exception as exc:
                LOGGER.warning("Readiness probe %d for %s failed: %s", attempt, address, exc)
                continue
            LOGGER.debug("Readiness probe %d for %s answered %r", attempt, address, name)
            outcome = ReadinessOutcome.VERIFIED
            break
        else:
            LOGGER.warning("Readiness probes for %s exhausted, continuing anyway", address)

        cache.touch(address, self.connections.clock())
        return outcome
