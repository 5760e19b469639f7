"""TCP transport for printers reachable on a raw print port."""

from __future__ import annotations

import socket

from printlink.core.errors import TransportConnectError, TransportTimeoutError
from printlink.transports.stream import StreamSocketTransport

DEFAULT_PORT = 9100


class NetworkTransport(StreamSocketTransport):
    def __init__(self, host: str, *, port: int = DEFAULT_PORT, timeout_s: float = 5.0) -> None:
        super().__init__(f"{host}:{port}", timeout_s=timeout_s)
        self.host = host
        self.port = port

    def _connect(self) -> socket.socket:
        try:
            return socket.create_connection((self.host, self.port), timeout=self.timeout_s)
        except TimeoutError as exc:
            raise TransportTimeoutError(f"TCP connect timed out for {self.address}") from exc
        except OSError as exc:
            raise TransportConnectError(f"TCP connect failed for {self.address}: {exc}") from exc
