"""Stable public API for building tooling on top of printlink.

This module is the supported integration surface for third-party callers
(host applications, UI bridges, scripts). Avoid importing from the internal
``printlink.core`` modules unless intentionally depending on non-stable
internals.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from printlink.core.bonding import HostBonding
from printlink.core.connection import TransportFactoryFn
from printlink.core.discovery import DiscoverySession, ScannerFactory
from printlink.core.errors import (
    AlreadyBusyError,
    AlreadyDiscoveringError,
    BondingFailedError,
    ConfigError,
    ConnectionFailedError,
    DiscoveryFailedError,
    InvalidAddressError,
    InvalidArgumentError,
    NotConnectedError,
    OperationFailedError,
    PrintFailedError,
    PrintlinkError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    UnavailableError,
)
from printlink.core.events import EventChannel
from printlink.core.model import (
    BondState,
    ConnectionState,
    ConnectionStateChanged,
    Device,
    DeviceFound,
    DiscoveryFailed,
    DiscoveryFinished,
    PrinterInfo,
    PrinterStatus,
    SendResult,
    TransportKind,
)
from printlink.core.service import PrinterService
from printlink.core.settings import Settings, load_settings
from printlink.transports.base import Transport

__all__ = [
    "PrintlinkError",
    "ConfigError",
    "InvalidArgumentError",
    "InvalidAddressError",
    "UnavailableError",
    "AlreadyBusyError",
    "AlreadyDiscoveringError",
    "NotConnectedError",
    "ConnectionFailedError",
    "OperationFailedError",
    "PrintFailedError",
    "BondingFailedError",
    "DiscoveryFailedError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "BondState",
    "ConnectionState",
    "ConnectionStateChanged",
    "Device",
    "DeviceFound",
    "DiscoveryFailed",
    "DiscoveryFinished",
    "DiscoverySession",
    "PrinterInfo",
    "PrinterStatus",
    "SendResult",
    "Settings",
    "Transport",
    "TransportKind",
    "Client",
]


class Client:
    """Public client for discovering, connecting to and printing on label printers.

    A `Client` owns one connection slot: operations against the connected
    printer reuse its link, operations against any other address open a
    short-lived link of their own. State changes and discovery results are
    queued on `events`; drain them with `events.get()`/`events.drain()` or
    subscribe handlers and call `events.publish()`.
    """

    def __init__(
        self,
        *,
        config_path: Path | None = None,
        settings: Settings | None = None,
        transport_factory: TransportFactoryFn | None = None,
        host_bonding: HostBonding | None = None,
        scanners: dict[TransportKind, ScannerFactory] | None = None,
        **service_options: Any,
    ) -> None:
        self._service = PrinterService(
            settings=settings or load_settings(config_path),
            transport_factory=transport_factory,
            host_bonding=host_bonding,
            scanners=scanners,
            **service_options,
        )

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def events(self) -> EventChannel:
        return self._service.events

    @property
    def runtime_warnings(self) -> tuple[str, ...]:
        return self._service.runtime_warnings

    @property
    def connection_state(self) -> ConnectionState:
        return self._service.connection_state

    def start_discovery(self, kind: TransportKind | str = TransportKind.BLUETOOTH) -> DiscoverySession:
        return self._service.start_discovery(kind)

    def stop_discovery(self) -> None:
        self._service.stop_discovery()

    def get_paired_devices(self) -> list[Device]:
        return self._service.get_paired_devices()

    def pair(self, address: str) -> None:
        self._service.pair(address)

    def unpair(self, address: str) -> None:
        self._service.unpair(address)

    def connect(self, address: str) -> None:
        self._service.connect(address)

    def disconnect(self, address: str | None = None) -> str:
        return self._service.disconnect(address)

    def is_connected(self, address: str | None = None) -> bool:
        return self._service.is_connected(address)

    def notify_link_lost(self, address: str) -> None:
        self._service.handle_link_lost(address)

    def send(self, address: str, data: str | bytes, *, encoding: str = "utf-8") -> SendResult:
        return self._service.send(address, data, encoding)

    def query(self, address: str, key: str) -> str:
        return self._service.query(address, key)

    def get_printer_info(self, address: str) -> PrinterInfo:
        return self._service.printer_info(address)

    def get_printer_status(self, address: str) -> PrinterStatus:
        return self._service.printer_status(address)

    def close(self) -> None:
        self._service.dispose()
