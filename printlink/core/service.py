"""Service layer used by the CLI, the public API and host integrations."""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable, Mapping

from printlink.core import sgd
from printlink.core.bonding import BluetoothctlBonding, BondingProxy, HostBonding
from printlink.core.connection import ConnectionManager, IdentityQuery, TransportFactoryFn
from printlink.core.discovery import (
    BluetoothctlScanner,
    DiscoveryEngine,
    DiscoverySession,
    ScannerFactory,
    ZebraNetworkScanner,
)
from printlink.core.errors import InvalidArgumentError
from printlink.core.events import EventChannel
from printlink.core.executor import OperationExecutor, QueryOperation, ReadinessQuery, SendOperation
from printlink.core.model import (
    ConnectionState,
    Device,
    PrinterInfo,
    PrinterStatus,
    SendResult,
    TransportKind,
)
from printlink.core.settings import Settings
from printlink.transports.factory import TransportFactory, normalize_address

LOGGER = logging.getLogger(__name__)

INFO_KEYS = ("device.product_name", "device.unique_id", "appl.name", "device.languages")
STATUS_KEYS = ("head.paper_out", "device.pause", "head.open", "head.temperature")


class PrinterService:
    """Discovery, bonding, connection and print/query operations for one host.

    Connection work (connect, disconnect, send, query) shares one serialized
    worker; discovery runs on its own.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        transport_factory: TransportFactoryFn | None = None,
        host_bonding: HostBonding | None = None,
        scanners: Mapping[TransportKind, ScannerFactory] | None = None,
        events: EventChannel | None = None,
        identity_query: IdentityQuery = sgd.control_language,
        readiness_query: ReadinessQuery = sgd.friendly_name,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.events = events or EventChannel()
        self.runtime_warnings = _runtime_warnings()
        self.connections = ConnectionManager(
            transport_factory=transport_factory or TransportFactory(self.settings),
            events=self.events,
            identity_query=identity_query,
            clock=clock,
        )
        self.executor = OperationExecutor(
            self.connections,
            readiness_query=readiness_query,
            sleep=sleep,
        )
        self.discovery = DiscoveryEngine(
            events=self.events,
            scanners=scanners if scanners is not None else self._default_scanners(),
            is_connected=self.connections.is_connected,
        )
        self.bonding = BondingProxy(self.connections, host_bonding or BluetoothctlBonding())

    def _default_scanners(self) -> dict[TransportKind, ScannerFactory]:
        discovery = self.settings.discovery
        return {
            TransportKind.BLUETOOTH: lambda: BluetoothctlScanner(discovery.bluetooth_scan_s),
            TransportKind.NETWORK: lambda: ZebraNetworkScanner(discovery.network_scan_s),
        }

    def __enter__(self) -> PrinterService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    # discovery and bonding

    def start_discovery(self, kind: TransportKind | str = TransportKind.BLUETOOTH) -> DiscoverySession:
        return self.discovery.start_discovery(kind)

    def stop_discovery(self) -> None:
        self.discovery.stop_discovery()

    def get_paired_devices(self) -> list[Device]:
        return self.bonding.paired_devices()

    def pair(self, address: str) -> None:
        self.bonding.pair(address)

    def unpair(self, address: str) -> None:
        self.bonding.unpair(address)

    # connection

    @property
    def connection_state(self) -> ConnectionState:
        return self.connections.state

    def connect(self, address: str) -> None:
        if self.discovery.current_kind is TransportKind.BLUETOOTH:
            LOGGER.info("Stopping Bluetooth discovery before connecting to %s", address)
            self.discovery.stop_discovery()
        self.connections.connect(address)

    def disconnect(self, address: str | None = None) -> str:
        if address:
            address = normalize_address(address)
        return self.connections.disconnect(address)

    def is_connected(self, address: str | None = None) -> bool:
        if address:
            address = normalize_address(address)
        return self.connections.is_connected(address)

    def handle_link_lost(self, address: str) -> None:
        self.connections.handle_link_lost(normalize_address(address))

    # operations

    def send(self, address: str, data: str | bytes, encoding: str = "utf-8") -> SendResult:
        address = normalize_address(address)
        payload = _encode_payload(data, encoding)
        result = self.executor.execute(address, SendOperation(payload))
        LOGGER.info(
            "Sent %d bytes to %s (%s connection)",
            result.value,
            address,
            "reused" if result.reused_connection else "transient",
        )
        return SendResult(
            address=address,
            byte_count=result.value,
            reused_connection=result.reused_connection,
        )

    def query(self, address: str, key: str) -> str:
        return self.query_many(address, (key,))[key.strip()]

    def query_many(self, address: str, keys: tuple[str, ...]) -> dict[str, str]:
        address = normalize_address(address)
        if not keys:
            raise InvalidArgumentError("At least one setting name is required")
        keys = tuple(key.strip() for key in keys)
        for key in keys:
            sgd.getvar_command(key)
        return self.executor.execute(address, QueryOperation(keys)).value

    def printer_info(self, address: str) -> PrinterInfo:
        values = self.query_many(address, INFO_KEYS)
        return PrinterInfo(
            model=values["device.product_name"],
            serial_number=values["device.unique_id"],
            firmware=values["appl.name"],
            language=values["device.languages"],
        )

    def printer_status(self, address: str) -> PrinterStatus:
        values = self.query_many(address, STATUS_KEYS)
        return PrinterStatus(
            is_paper_out=values["head.paper_out"] == "1",
            is_paused=values["device.pause"] == "1",
            is_head_open=values["head.open"] == "1",
            temperature=values["head.temperature"],
        )

    def dispose(self) -> None:
        self.discovery.stop_discovery()
        try:
            if self.connections.is_connected():
                self.connections.disconnect()
        finally:
            self.connections.worker.shutdown()
            self.discovery.worker.shutdown(wait=False)


def _encode_payload(data: str | bytes, encoding: str) -> bytes:
    if isinstance(data, bytes):
        payload = data
    else:
        try:
            payload = data.encode(encoding)
        except LookupError as exc:
            raise InvalidArgumentError(f"Unknown encoding '{encoding}'") from exc
        except UnicodeEncodeError as exc:
            raise InvalidArgumentError(f"Payload cannot be encoded as {encoding}: {exc}") from exc
    if not payload:
        raise InvalidArgumentError("Print payload must not be empty")
    return payload


def _runtime_warnings() -> tuple[str, ...]:
    warnings: list[str] = []
    if not hasattr(socket, "AF_BLUETOOTH") or not hasattr(socket, "BTPROTO_RFCOMM"):
        warnings.append(
            "Python runtime missing AF_BLUETOOTH/BTPROTO_RFCOMM; Bluetooth connections will fail."
        )
    return tuple(warnings)
