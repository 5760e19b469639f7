from __future__ import annotations

import socket

import pytest

from conftest import ListScanner
from printlink.core import service as service_module
from printlink.core.errors import (
    AlreadyBusyError,
    InvalidAddressError,
    InvalidArgumentError,
    NotConnectedError,
    UnavailableError,
)
from printlink.core.executor import SEND_SETTLE_S, WARM_DELAY_S
from printlink.core.model import (
    ConnectionState,
    ConnectionStateChanged,
    Device,
    PrinterInfo,
    PrinterStatus,
    TransportKind,
)
from printlink.core.service import PrinterService

MAC = "AA:BB:CC:DD:EE:01"
LABEL = "^XA^FO50,50^ADN,36,20^FDHello^FS^XZ"


class FakeHost:
    def __init__(self) -> None:
        self.paired = [Device(MAC, "XXQLJ120900310", TransportKind.BLUETOOTH)]
        self.unpaired: list[str] = []

    def enumerate_paired(self):
        return list(self.paired)

    def pair(self, address: str) -> None:
        self.paired.append(Device(address, address, TransportKind.BLUETOOTH))

    def unpair(self, address: str) -> None:
        self.unpaired.append(address)


@pytest.fixture
def scanners():
    return {
        TransportKind.BLUETOOTH: ListScanner(hold=True),
        TransportKind.NETWORK: ListScanner(hold=True),
    }


@pytest.fixture
def service(transport_factory, clock, sleeps, scanners):
    svc = PrinterService(
        transport_factory=transport_factory,
        host_bonding=FakeHost(),
        scanners={kind: (lambda s=scanner: s) for kind, scanner in scanners.items()},
        sleep=sleeps.append,
        clock=clock,
    )
    yield svc
    for scanner in scanners.values():
        scanner.released.set()
    svc.dispose()


def test_connect_print_disconnect_print(service, transport_factory, clock, sleeps) -> None:
    service.connect(MAC)
    assert service.is_connected(MAC)
    assert service.connection_state is ConnectionState.CONNECTED

    first = service.send(MAC, LABEL)
    assert first.reused_connection is True
    assert first.byte_count == len(LABEL)
    assert len(transport_factory.created) == 1

    assert service.disconnect() == MAC
    assert not service.is_connected()

    clock.advance(3)
    sleeps.clear()
    second = service.send(MAC.lower(), LABEL)

    assert second.reused_connection is False
    assert second.address == MAC
    assert sleeps == [WARM_DELAY_S, SEND_SETTLE_S]
    assert transport_factory.created[1].writes == [LABEL.encode()]
    assert transport_factory.created[1].close_calls == 1


def test_state_events_are_queued_in_order(service) -> None:
    service.connect(MAC)
    service.disconnect(MAC)

    states = [e.state for e in service.events.drain() if isinstance(e, ConnectionStateChanged)]
    assert states == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTING,
        ConnectionState.DISCONNECTED,
    ]


def test_send_uses_requested_encoding(service, transport_factory) -> None:
    result = service.send(MAC, "! 0 200 200 210 1\r\nTEXT 4 0 30 40 Größe\r\nPRINT\r\n", "cp1252")

    payload = transport_factory.created[0].writes[-1]
    assert "Größe".encode("cp1252") in payload
    assert result.byte_count == len(payload)


def test_send_passes_bytes_through(service, transport_factory) -> None:
    service.send(MAC, b"\x1b@raw")
    assert transport_factory.created[0].writes[-1] == b"\x1b@raw"


@pytest.mark.parametrize(
    ("data", "encoding"),
    [
        ("label", "no-such-codec"),
        ("price: 5€", "latin-1"),
        ("", "utf-8"),
        (b"", "utf-8"),
    ],
)
def test_send_rejects_bad_payloads(service, transport_factory, data, encoding) -> None:
    with pytest.raises(InvalidArgumentError):
        service.send(MAC, data, encoding)
    assert transport_factory.created == []


def test_send_rejects_empty_address(service) -> None:
    with pytest.raises(InvalidAddressError):
        service.send("  ", LABEL)


def test_malformed_address_fails_before_connecting(service, transport_factory) -> None:
    with pytest.raises(InvalidAddressError):
        service.connect("not a printer")
    assert transport_factory.created == []
    assert service.connection_state is ConnectionState.DISCONNECTED


def test_network_address_is_accepted(service, transport_factory) -> None:
    result = service.send("192.168.1.40:6101", LABEL)
    assert result.address == "192.168.1.40:6101"
    assert transport_factory.created[0].address == "192.168.1.40:6101"


def test_printer_info(service) -> None:
    assert service.printer_info(MAC) == PrinterInfo(
        model="ZQ320",
        serial_number="XXQLJ120900310",
        firmware="V68.20.15Z",
        language="zpl",
    )


def test_printer_status(service) -> None:
    assert service.printer_status(MAC) == PrinterStatus(
        is_paper_out=False,
        is_paused=True,
        is_head_open=False,
        temperature="27",
    )


def test_query_single_value(service) -> None:
    assert service.query(MAC, " device.product_name ") == "ZQ320"


@pytest.mark.parametrize("key", ["", 'bad"key', "two\r\nlines"])
def test_query_rejects_bad_setting_names(service, transport_factory, key) -> None:
    with pytest.raises(InvalidArgumentError):
        service.query(MAC, key)
    assert transport_factory.created == []


def test_query_many_requires_keys(service) -> None:
    with pytest.raises(InvalidArgumentError):
        service.query_many(MAC, ())


def test_connect_stops_bluetooth_discovery(service, scanners) -> None:
    session = service.start_discovery(TransportKind.BLUETOOTH)
    assert scanners[TransportKind.BLUETOOTH].started.wait(5)

    service.connect(MAC)

    assert scanners[TransportKind.BLUETOOTH].cancel_calls == 1
    assert session.cancelled
    assert not service.discovery.is_discovering
    assert service.is_connected(MAC)


def test_connect_keeps_network_discovery_running(service, scanners) -> None:
    service.start_discovery(TransportKind.NETWORK)

    service.connect(MAC)

    assert scanners[TransportKind.NETWORK].cancel_calls == 0
    assert service.discovery.current_kind is TransportKind.NETWORK


def test_connect_while_connected_is_busy(service) -> None:
    service.connect(MAC)
    with pytest.raises(AlreadyBusyError):
        service.connect("AA:BB:CC:DD:EE:02")
    assert service.is_connected(MAC)


def test_link_loss_clears_connection(service) -> None:
    service.connect(MAC)

    service.handle_link_lost(MAC.lower())

    # queued behind the link-loss handling on the same worker
    with pytest.raises(NotConnectedError):
        service.disconnect()
    assert service.connection_state is ConnectionState.DISCONNECTED


def test_paired_devices_and_unpair(service) -> None:
    service.connect(MAC)
    assert [d.is_connected for d in service.get_paired_devices()] == [True]

    service.unpair(MAC)

    assert service.bonding.host.unpaired == [MAC]
    assert not service.is_connected()


def test_dispose_closes_active_connection(transport_factory, clock, sleeps) -> None:
    svc = PrinterService(
        transport_factory=transport_factory,
        host_bonding=FakeHost(),
        scanners={},
        sleep=sleeps.append,
        clock=clock,
    )
    with svc:
        svc.connect(MAC)

    assert transport_factory.created[0].close_calls == 1
    with pytest.raises(UnavailableError):
        svc.connect(MAC)


def test_runtime_warning_without_bluetooth_sockets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delattr(socket, "AF_BLUETOOTH", raising=False)
    warnings = service_module._runtime_warnings()
    assert len(warnings) == 1
    assert "AF_BLUETOOTH" in warnings[0]


def test_dispose_shuts_down_workers_when_disconnect_fails(transport_factory, clock, sleeps) -> None:
    svc = PrinterService(
        transport_factory=transport_factory,
        host_bonding=FakeHost(),
        scanners={},
        sleep=sleeps.append,
        clock=clock,
    )
    svc.connect(MAC)

    def busy(address=None):
        raise AlreadyBusyError("Another connection operation is already in progress")

    svc.connections.disconnect = busy

    with pytest.raises(AlreadyBusyError):
        svc.dispose()

    with pytest.raises(UnavailableError):
        svc.send(MAC, LABEL)
