"""Device discovery sessions and the scanners behind them."""

from __future__ import annotations

import logging
import re
import socket
import subprocess
import threading
import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future
from dataclasses import replace
from typing import Protocol

from printlink.core.errors import (
    AlreadyDiscoveringError,
    DiscoveryFailedError,
    InvalidArgumentError,
    UnavailableError,
)
from printlink.core.events import EventChannel
from printlink.core.model import (
    BondState,
    Device,
    DeviceFound,
    DiscoveryFailed,
    DiscoveryFinished,
    TransportKind,
)
from printlink.core.worker import SerialWorker

LOGGER = logging.getLogger(__name__)

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m|\x01|\x02")
_NEW_DEVICE_RE = re.compile(r"\[NEW\]\s+Device\s+([0-9A-F:]{17})\s*(.*)$", re.IGNORECASE)
_PRINTABLE_RE = re.compile(rb"[\x20-\x7e]{3,}")

ZEBRA_DISCOVERY_PORT = 4201
ZEBRA_DISCOVERY_REQUEST = bytes((0x2E, 0x2C, 0x3A, 0x01, 0x00, 0x00))


class Scanner(Protocol):
    def scan(self, on_found: Callable[[Device], None]) -> None:
        """Block until the scan ends, reporting devices as they appear."""

    def cancel(self) -> None:
        """Ask a running scan to stop early."""


ScannerFactory = Callable[[], Scanner]


class BluetoothctlScanner:
    """Inquiry scan through BlueZ's ``bluetoothctl``."""

    def __init__(self, scan_s: float = 10.0) -> None:
        self.scan_s = scan_s
        self._proc: subprocess.Popen[str] | None = None
        self._cancelled = threading.Event()

    def scan(self, on_found: Callable[[Device], None]) -> None:
        if self._cancelled.is_set():
            return
        cmd = ["bluetoothctl", "--timeout", str(max(1, int(self.scan_s))), "scan", "on"]
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as exc:
            raise UnavailableError("bluetoothctl is not installed; Bluetooth discovery is unavailable") from exc
        # cancel() may have run before the process handle existed
        if self._cancelled.is_set() and self._proc.poll() is None:
            self._proc.terminate()

        assert self._proc.stdout is not None
        for line in self._proc.stdout:
            device = parse_scan_line(line)
            if device is not None:
                on_found(device)

        stderr = self._proc.stderr.read() if self._proc.stderr else ""
        returncode = self._proc.wait()
        if returncode != 0 and not self._cancelled.is_set():
            raise DiscoveryFailedError(
                f"Bluetooth scan failed (exit {returncode})",
                detail=stderr.strip() or None,
            )

    def cancel(self) -> None:
        self._cancelled.set()
        if self._proc is not None and self._proc.poll() is None:
            self._proc.terminate()


def parse_scan_line(line: str) -> Device | None:
    match = _NEW_DEVICE_RE.search(_ANSI_RE.sub("", line).strip())
    if not match:
        return None
    address = match.group(1).upper()
    name = match.group(2).strip()
    # bluetoothctl prints the dashed address when a device has no name
    if not name or name.replace("-", ":").upper() == address:
        name = address
    return Device(address=address, friendly_name=name, transport_kind=TransportKind.BLUETOOTH)


class ZebraNetworkScanner:
    """UDP broadcast discovery on the printer discovery port."""

    def __init__(
        self,
        scan_s: float = 3.0,
        *,
        broadcast_address: str = "255.255.255.255",
        port: int = ZEBRA_DISCOVERY_PORT,
    ) -> None:
        self.scan_s = scan_s
        self.broadcast_address = broadcast_address
        self.port = port
        self._cancelled = threading.Event()

    def scan(self, on_found: Callable[[Device], None]) -> None:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as exc:
            raise DiscoveryFailedError(f"Could not create discovery socket: {exc}") from exc
        with sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.settimeout(0.25)
            try:
                sock.sendto(ZEBRA_DISCOVERY_REQUEST, (self.broadcast_address, self.port))
            except OSError as exc:
                raise DiscoveryFailedError(f"Network discovery broadcast failed: {exc}") from exc

            deadline = time.monotonic() + self.scan_s
            while time.monotonic() < deadline and not self._cancelled.is_set():
                try:
                    data, (host, _port) = sock.recvfrom(2048)
                except socket.timeout:
                    continue
                except OSError as exc:
                    raise DiscoveryFailedError(f"Network discovery receive failed: {exc}") from exc
                on_found(parse_discovery_reply(host, data))

    def cancel(self) -> None:
        self._cancelled.set()


def parse_discovery_reply(host: str, data: bytes) -> Device:
    # the header is binary; the first printable run is the product name
    match = _PRINTABLE_RE.search(data[4:])
    name = match.group(0).decode("ascii").strip() if match else ""
    return Device(
        address=host,
        friendly_name=name or host,
        transport_kind=TransportKind.NETWORK,
        bond_state=BondState.NONE,
    )


class DiscoverySession:
    def __init__(self, kind: TransportKind, scanner: Scanner) -> None:
        self.kind = kind
        self.scanner = scanner
        self.devices: list[Device] = []
        self.cancelled = False
        self.future: Future[None] | None = None
        self._seen: set[str] = set()

    @property
    def is_active(self) -> bool:
        return not self.cancelled and self.future is not None and not self.future.done()

    def wait(self, timeout: float | None = None) -> tuple[Device, ...]:
        """Block until the scan ends and return the devices found."""
        if self.future is not None:
            self.future.result(timeout)
        return tuple(self.devices)


class DiscoveryEngine:
    def __init__(
        self,
        *,
        events: EventChannel,
        scanners: Mapping[TransportKind, ScannerFactory],
        worker: SerialWorker | None = None,
        is_connected: Callable[[str], bool] | None = None,
    ) -> None:
        self.events = events
        self.scanners = dict(scanners)
        self.worker = worker or SerialWorker(name="printlink-discovery")
        self.is_connected = is_connected
        self._lock = threading.Lock()
        self._session: DiscoverySession | None = None

    @property
    def is_discovering(self) -> bool:
        with self._lock:
            return self._session is not None

    @property
    def current_kind(self) -> TransportKind | None:
        with self._lock:
            return self._session.kind if self._session else None

    def start_discovery(self, kind: TransportKind | str) -> DiscoverySession:
        try:
            kind = TransportKind(kind)
        except ValueError as exc:
            raise InvalidArgumentError(f"Unknown discovery type '{kind}'") from exc
        factory = self.scanners.get(kind)
        if factory is None:
            raise UnavailableError(f"No scanner available for {kind.value} discovery")

        with self._lock:
            if self._session is not None:
                raise AlreadyDiscoveringError("Discovery is already in progress")
            session = DiscoverySession(kind, factory())
            LOGGER.info("Starting %s discovery", kind.value)
            session.future = self.worker.submit(self._run, session)
            self._session = session
        return session

    def stop_discovery(self) -> None:
        with self._lock:
            session, self._session = self._session, None
            if session is None:
                return
            session.cancelled = True
        LOGGER.info("Stopping %s discovery", session.kind.value)
        session.scanner.cancel()

    def _run(self, session: DiscoverySession) -> None:
        try:
            session.scanner.scan(lambda device: self._found(session, device))
        except Exception as exc:
            with self._lock:
                if session.cancelled:
                    return
                self._session = None
                LOGGER.error("%s discovery failed: %s", session.kind.value, exc)
                self.events.emit(DiscoveryFailed(kind=session.kind, error=str(exc)))
            if isinstance(exc, DiscoveryFailedError):
                raise
            raise DiscoveryFailedError(
                f"{session.kind.value} discovery failed: {exc}", detail=repr(exc)
            ) from exc

        with self._lock:
            if session.cancelled:
                return
            self._session = None
            if not session.devices:
                LOGGER.warning("%s discovery finished without finding any printer", session.kind.value)
            self.events.emit(DiscoveryFinished(kind=session.kind, devices=tuple(session.devices)))

    def _found(self, session: DiscoverySession, device: Device) -> None:
        with self._lock:
            if session.cancelled or device.address in session._seen:
                return
            session._seen.add(device.address)
            if self.is_connected is not None and self.is_connected(device.address):
                device = replace(device, is_connected=True)
            session.devices.append(device)
            LOGGER.debug("Found %s (%s)", device.address, device.friendly_name)
            self.events.emit(DeviceFound(device=device))
