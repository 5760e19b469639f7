"""Core data models shared by the connection, discovery and CLI layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from printlink.transports.base import Transport


class TransportKind(str, Enum):
    BLUETOOTH = "bluetooth"
    NETWORK = "network"


class BondState(str, Enum):
    NONE = "none"
    BONDING = "bonding"
    BONDED = "bonded"
    UNKNOWN = "unknown"


class ConnectionState(Enum):
    """States of the single active connection slot."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTING = auto()
    ERROR = auto()


class ReadinessOutcome(Enum):
    """How a freshly opened transport was judged ready for use."""

    WARM = auto()
    VERIFIED = auto()
    UNVERIFIED = auto()


@dataclass(frozen=True)
class Device:
    address: str
    friendly_name: str
    transport_kind: TransportKind
    bond_state: BondState = BondState.UNKNOWN
    is_connected: bool = False


@dataclass(frozen=True)
class ActiveConnection:
    address: str
    transport: Transport
    opened_at: float


@dataclass(frozen=True)
class OperationResult:
    value: Any
    reused_connection: bool
    readiness: ReadinessOutcome | None


@dataclass(frozen=True)
class SendResult:
    address: str
    byte_count: int
    reused_connection: bool


@dataclass(frozen=True)
class PrinterInfo:
    model: str
    serial_number: str
    firmware: str
    language: str


@dataclass(frozen=True)
class PrinterStatus:
    is_paper_out: bool
    is_paused: bool
    is_head_open: bool
    temperature: str


@dataclass(frozen=True)
class DeviceFound:
    device: Device


@dataclass(frozen=True)
class DiscoveryFinished:
    kind: TransportKind
    devices: tuple[Device, ...]


@dataclass(frozen=True)
class DiscoveryFailed:
    kind: TransportKind
    error: str


@dataclass(frozen=True)
class ConnectionStateChanged:
    address: str | None
    state: ConnectionState
    error: str | None = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED
