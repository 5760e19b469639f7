"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from printlink.core.errors import InvalidArgumentError, PrintlinkError
from printlink.core.model import DeviceFound, DiscoveryFailed, DiscoveryFinished, TransportKind
from printlink.core.service import PrinterService
from printlink.core.settings import load_settings

app = typer.Typer(help="Discover, pair with and print to Bluetooth and network label printers")


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="Path to a YAML config file"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity"),
) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = {"config": config}


def _build_service(ctx: typer.Context) -> PrinterService:
    config = (ctx.obj or {}).get("config")
    service = PrinterService(settings=load_settings(config))
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _fail(exc: PrintlinkError) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    if exc.detail:
        typer.echo(f"  detail: {exc.detail}", err=True)
    return typer.Exit(code=1)


@app.command("discover")
def discover(
    ctx: typer.Context,
    kind: TransportKind = typer.Option(TransportKind.BLUETOOTH, "--kind", help="bluetooth or network"),
) -> None:
    """Scan for printers and list them as they are found."""
    try:
        service = _build_service(ctx)
        session = service.start_discovery(kind)
        try:
            while True:
                event = service.events.get(timeout=0.5)
                if event is None:
                    if not session.is_active:
                        break
                    continue
                if isinstance(event, DeviceFound):
                    device = event.device
                    typer.echo(f"{device.address} {device.friendly_name}")
                elif isinstance(event, DiscoveryFinished):
                    typer.echo(f"Found {len(event.devices)} printer(s)")
                    break
                elif isinstance(event, DiscoveryFailed):
                    typer.echo(f"Error: {event.error}", err=True)
                    raise typer.Exit(code=1)
        except KeyboardInterrupt:
            service.stop_discovery()
    except PrintlinkError as exc:
        raise _fail(exc) from None


@app.command("paired")
def paired(ctx: typer.Context) -> None:
    """List Bluetooth devices paired with this host."""
    try:
        service = _build_service(ctx)
        devices = service.get_paired_devices()
        if not devices:
            typer.echo("No paired devices")
            return
        for device in devices:
            typer.echo(f"{device.address} {device.friendly_name}")
    except PrintlinkError as exc:
        raise _fail(exc) from None


@app.command("pair")
def pair(ctx: typer.Context, address: str) -> None:
    """Ask the host to pair with a Bluetooth printer."""
    try:
        _build_service(ctx).pair(address)
        typer.echo(f"Pairing requested for {address}; confirm on the host if prompted")
    except PrintlinkError as exc:
        raise _fail(exc) from None


@app.command("unpair")
def unpair(ctx: typer.Context, address: str) -> None:
    """Remove the pairing with a Bluetooth printer."""
    try:
        _build_service(ctx).unpair(address)
        typer.echo(f"Unpaired {address}")
    except PrintlinkError as exc:
        raise _fail(exc) from None


@app.command("print")
def print_label(
    ctx: typer.Context,
    address: str,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    encoding: str = typer.Option("utf-8", "--encoding", help="Encoding used on the wire, e.g. cp1252 for CPCL"),
) -> None:
    """Send a label file (ZPL, CPCL, ...) to a printer."""
    try:
        service = _build_service(ctx)
        data = _read_label(file, encoding)
        result = service.send(address, data, encoding)
        typer.echo(f"Sent {result.byte_count} bytes to {result.address}")
    except PrintlinkError as exc:
        raise _fail(exc) from None


def _read_label(file: Path, encoding: str) -> str:
    raw = file.read_bytes()
    try:
        return raw.decode(encoding)
    except LookupError as exc:
        raise InvalidArgumentError(f"Unknown encoding '{encoding}'") from exc
    except UnicodeDecodeError as exc:
        raise InvalidArgumentError(f"{file} is not valid {encoding}: {exc}") from exc


@app.command("query")
def query(ctx: typer.Context, address: str, key: str) -> None:
    """Read a single printer setting, e.g. device.friendly_name."""
    try:
        typer.echo(_build_service(ctx).query(address, key))
    except PrintlinkError as exc:
        raise _fail(exc) from None


@app.command("info")
def info(ctx: typer.Context, address: str) -> None:
    """Show model, serial number, firmware and command language."""
    try:
        details = _build_service(ctx).printer_info(address)
        typer.echo(f"Model: {details.model}")
        typer.echo(f"Serial: {details.serial_number}")
        typer.echo(f"Firmware: {details.firmware}")
        typer.echo(f"Language: {details.language}")
    except PrintlinkError as exc:
        raise _fail(exc) from None


@app.command("status")
def status(ctx: typer.Context, address: str) -> None:
    """Show paper, pause, head and temperature status."""
    try:
        state = _build_service(ctx).printer_status(address)
        typer.echo(f"Paper out: {'yes' if state.is_paper_out else 'no'}")
        typer.echo(f"Paused: {'yes' if state.is_paused else 'no'}")
        typer.echo(f"Head open: {'yes' if state.is_head_open else 'no'}")
        typer.echo(f"Temperature: {state.temperature}")
    except PrintlinkError as exc:
        raise _fail(exc) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
