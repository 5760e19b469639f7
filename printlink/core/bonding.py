"""Pass-through to the host pairing subsystem."""

from __future__ import annotations

import logging
import re
import subprocess
import threading
from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol

from printlink.core.connection import ConnectionManager
from printlink.core.errors import BondingFailedError, InvalidArgumentError, UnavailableError
from printlink.core.model import BondState, Device, TransportKind
from printlink.transports.factory import normalize_address, transport_kind_for

LOGGER = logging.getLogger(__name__)

_DEVICE_LINE_RE = re.compile(r"^Device\s+([0-9A-F:]{17})\s+(.+)$", re.IGNORECASE)


class HostBonding(Protocol):
    def pair(self, address: str) -> None:
        ...

    def unpair(self, address: str) -> None:
        ...

    def enumerate_paired(self) -> list[Device]:
        ...


class BluetoothctlBonding:
    """Host bonding through BlueZ's ``bluetoothctl``."""

    def enumerate_paired(self) -> list[Device]:
        commands = [
            ["bluetoothctl", "devices", "Paired"],
            ["bluetoothctl", "paired-devices"],
        ]
        command_errors: list[str] = []
        any_ran = False

        for cmd in commands:
            result = _run_bluetoothctl(cmd)
            if result is None:
                continue
            any_ran = True
            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                if stderr:
                    command_errors.append(f"{' '.join(cmd)} -> {stderr}")
                continue
            return _parse_device_lines(result.stdout)

        if not any_ran:
            raise UnavailableError("bluetoothctl is not installed; paired devices cannot be listed")
        joined = " | ".join(command_errors) or "unknown error"
        raise BondingFailedError(
            "Listing paired devices failed. Ensure a working D-Bus/BlueZ session.",
            detail=joined,
        )

    def pair(self, address: str) -> None:
        # completion may need confirmation on the host; it is not awaited
        try:
            proc = subprocess.Popen(
                ["bluetoothctl", "pair", address],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise UnavailableError("bluetoothctl is not installed; pairing is unavailable") from exc
        except OSError as exc:
            raise BondingFailedError(f"Pairing with {address} failed: {exc}") from exc
        threading.Thread(target=proc.wait, name=f"printlink-pair-{address}", daemon=True).start()

    def unpair(self, address: str) -> None:
        result = _run_bluetoothctl(["bluetoothctl", "remove", address])
        if result is None:
            raise UnavailableError("bluetoothctl is not installed; unpairing is unavailable")
        if result.returncode != 0:
            raise BondingFailedError(
                f"Removing pairing for {address} failed",
                detail=(result.stderr or result.stdout or "").strip() or None,
            )


def _parse_device_lines(output: str) -> list[Device]:
    seen: set[str] = set()
    devices: list[Device] = []
    for line in output.splitlines():
        match = _DEVICE_LINE_RE.match(line.strip())
        if not match:
            continue
        mac, name = match.group(1).upper(), match.group(2).strip()
        if mac in seen:
            continue
        seen.add(mac)
        devices.append(
            Device(
                address=mac,
                friendly_name=name or mac,
                transport_kind=TransportKind.BLUETOOTH,
                bond_state=BondState.BONDED,
            )
        )
    return devices


def _run_bluetoothctl(cmd: Sequence[str]) -> subprocess.CompletedProcess[str] | None:
    try:
        return subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None


class BondingProxy:
    """Pair/unpair requests that keep the active connection consistent."""

    def __init__(self, connections: ConnectionManager, host: HostBonding) -> None:
        self.connections = connections
        self.host = host

    def paired_devices(self) -> list[Device]:
        active = self.connections.active_address
        return [
            replace(device, is_connected=device.address == active)
            for device in self.host.enumerate_paired()
        ]

    def pair(self, address: str) -> None:
        address = _bluetooth_address(address)
        if any(device.address == address for device in self.host.enumerate_paired()):
            LOGGER.info("%s is already paired", address)
            return
        LOGGER.info("Requesting pairing with %s", address)
        self.host.pair(address)

    def unpair(self, address: str) -> None:
        address = _bluetooth_address(address)
        if self.connections.is_connected(address):
            LOGGER.info("Disconnecting %s before unpairing", address)
            self.connections.disconnect(address)
        LOGGER.info("Removing pairing with %s", address)
        self.host.unpair(address)


def _bluetooth_address(address: str) -> str:
    address = normalize_address(address)
    if transport_kind_for(address) is not TransportKind.BLUETOOTH:
        raise InvalidArgumentError(f"'{address}' is not a Bluetooth address; only Bluetooth devices can be paired")
    return address
