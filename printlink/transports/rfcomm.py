"""RFCOMM transport implementation using Python sockets."""

from __future__ import annotations

import socket

from printlink.core.errors import (
    TransportConnectError,
    TransportTimeoutError,
    UnavailableError,
)
from printlink.transports.stream import StreamSocketTransport


class RFCOMMTransport(StreamSocketTransport):
    def __init__(self, mac: str, *, channel: int = 1, timeout_s: float = 5.0) -> None:
        super().__init__(mac, timeout_s=timeout_s)
        self.channel = channel

    def _connect(self) -> socket.socket:
        try:
            af_bluetooth = socket.AF_BLUETOOTH
            btproto_rfcomm = socket.BTPROTO_RFCOMM
        except AttributeError as exc:
            raise UnavailableError(
                "This Python build does not expose Bluetooth socket APIs (AF_BLUETOOTH/BTPROTO_RFCOMM)."
            ) from exc

        try:
            bt_socket = socket.socket(af_bluetooth, socket.SOCK_STREAM, btproto_rfcomm)
        except OSError as exc:
            raise TransportConnectError(f"Could not create RFCOMM socket: {exc}") from exc
        bt_socket.settimeout(self.timeout_s)
        try:
            bt_socket.connect((self.address, self.channel))
        except TimeoutError as exc:
            bt_socket.close()
            raise TransportTimeoutError(
                f"RFCOMM connect timed out for {self.address} on channel {self.channel}"
            ) from exc
        except OSError as exc:
            bt_socket.close()
            raise TransportConnectError(
                f"RFCOMM connect failed for {self.address} on channel {self.channel}: {exc}"
            ) from exc
        return bt_socket
