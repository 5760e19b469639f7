"""Address classification and transport construction."""

from __future__ import annotations

import re

from printlink.core.errors import InvalidAddressError
from printlink.core.model import TransportKind
from printlink.core.settings import Settings
from printlink.transports.base import Transport
from printlink.transports.network import NetworkTransport
from printlink.transports.rfcomm import RFCOMMTransport

_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$", re.IGNORECASE)
_HOST_RE = re.compile(r"^[0-9A-Za-z.\-]+$")


def normalize_address(address: str | None) -> str:
    if address is None or not address.strip():
        raise InvalidAddressError("Device address must not be empty")
    normalized = address.strip()
    if _MAC_RE.match(normalized):
        return normalized.upper()
    split_host_port(normalized, 1)
    return normalized


def transport_kind_for(address: str) -> TransportKind:
    return TransportKind.BLUETOOTH if _MAC_RE.match(address.strip()) else TransportKind.NETWORK


def split_host_port(address: str, default_port: int) -> tuple[str, int]:
    host, sep, port_text = address.rpartition(":")
    if not sep:
        host, port_text = address, ""
    if not host or not _HOST_RE.match(host):
        raise InvalidAddressError(f"'{address}' is neither a Bluetooth MAC nor a host[:port]")
    if not port_text:
        return host, default_port
    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise InvalidAddressError(f"Invalid port in address '{address}'")
    return host, int(port_text)


class TransportFactory:
    """Builds an unopened transport for an address using configured defaults."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()

    def __call__(self, address: str) -> Transport:
        address = normalize_address(address)
        if transport_kind_for(address) is TransportKind.BLUETOOTH:
            return RFCOMMTransport(
                address,
                channel=self.settings.bluetooth.channel,
                timeout_s=self.settings.bluetooth.timeout_s,
            )
        host, port = split_host_port(address, self.settings.network.port)
        return NetworkTransport(host, port=port, timeout_s=self.settings.network.timeout_s)
