from __future__ import annotations

import re
import threading

import pytest

from printlink.core.errors import TransportConnectError, TransportSendError

_GETVAR_RE = re.compile(rb'getvar "([^"]+)"')

PRINTER_SETTINGS = {
    "device.languages": "zpl",
    "device.friendly_name": "XXQLJ120900310",
    "device.product_name": "ZQ320",
    "device.unique_id": "XXQLJ120900310",
    "appl.name": "V68.20.15Z",
    "head.paper_out": "0",
    "device.pause": "1",
    "head.open": "0",
    "head.temperature": "27",
}


class FakeTransport:
    def __init__(
        self,
        address: str,
        *,
        settings: dict[str, str] | None = None,
        fail_open: bool = False,
        fail_write: bool = False,
        fail_close: bool = False,
    ) -> None:
        self.address = address
        self.settings = dict(PRINTER_SETTINGS if settings is None else settings)
        self.fail_open = fail_open
        self.fail_write = fail_write
        self.fail_close = fail_close
        self.open_calls = 0
        self.close_calls = 0
        self.writes: list[bytes] = []
        self._open = False
        self._pending: list[bytes] = []

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise TransportConnectError(f"connect failed for {self.address}")
        self._open = True

    def write(self, data: bytes) -> None:
        if self.fail_write:
            raise TransportSendError("broken pipe")
        self.writes.append(data)
        match = _GETVAR_RE.search(data)
        if match:
            value = self.settings.get(match.group(1).decode())
            if value is not None:
                self._pending.append(f'"{value}"'.encode())

    def read(self, max_bytes: int = 1024) -> bytes:
        return self._pending.pop(0) if self._pending else b""

    def close(self) -> None:
        self.close_calls += 1
        self._open = False
        if self.fail_close:
            raise TransportSendError("close failed")

    def drop_link(self) -> None:
        self._open = False


class FakeTransportFactory:
    def __init__(self, **options) -> None:
        self.options = options
        self.created: list[FakeTransport] = []

    def __call__(self, address: str) -> FakeTransport:
        transport = FakeTransport(address, **self.options)
        self.created.append(transport)
        return transport


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    return []


class ListScanner:
    def __init__(self, devices=(), *, error: Exception | None = None, hold: bool = False) -> None:
        self.devices = list(devices)
        self.error = error
        self.hold = hold
        self.released = threading.Event()
        self.started = threading.Event()
        self.cancel_calls = 0

    def scan(self, on_found) -> None:
        self.started.set()
        for device in self.devices:
            on_found(device)
        if self.hold:
            self.released.wait(5)
        if self.error is not None:
            raise self.error

    def cancel(self) -> None:
        self.cancel_calls += 1
        self.released.set()
