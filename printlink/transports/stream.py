"""Shared plumbing for socket-backed stream transports."""

from __future__ import annotations

import logging
import socket

from printlink.core.errors import TransportSendError, TransportTimeoutError

LOGGER = logging.getLogger(__name__)


class StreamSocketTransport:
    """Connected SOCK_STREAM socket with write/read/close semantics.

    Subclasses implement ``_connect`` and return a connected socket.
    """

    def __init__(self, address: str, *, timeout_s: float) -> None:
        self.address = address
        self.timeout_s = timeout_s
        self._sock: socket.socket | None = None

    @property
    def is_open(self) -> bool:
        return self._sock is not None and self._sock.fileno() != -1

    def open(self) -> None:
        if self.is_open:
            return
        self._sock = self._connect()

    def _connect(self) -> socket.socket:
        raise NotImplementedError

    def write(self, data: bytes) -> None:
        sock = self._require_socket()
        try:
            sock.sendall(data)
        except TimeoutError as exc:
            raise TransportTimeoutError(f"Send to {self.address} timed out") from exc
        except OSError as exc:
            raise TransportSendError(f"Send to {self.address} failed: {exc}") from exc

    def read(self, max_bytes: int = 1024) -> bytes:
        sock = self._require_socket()
        try:
            return sock.recv(max_bytes)
        except socket.timeout:
            return b""
        except OSError as exc:
            raise TransportSendError(f"Receive from {self.address} failed: {exc}") from exc

    def close(self) -> None:
        sock, self._sock = self._sock, None
        if sock is None:
            return
        LOGGER.debug("Closing transport to %s", self.address)
        sock.close()

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise TransportSendError(f"Transport to {self.address} is not open")
        return self._sock
