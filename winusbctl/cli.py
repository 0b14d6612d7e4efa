"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from winusbctl.backends.snapshot import SnapshotBackend
from winusbctl.core.errors import WinusbctlError
from winusbctl.core.model import ERROR_EXIT_CODE, InstallStatus, QueryMode
from winusbctl.core.service import WinusbService

app = typer.Typer(help="Check and install WinUSB drivers for SiFive debug adapters")

_LIST_ALL_HELP = "List all connected devices, implies --verbose"
_VERBOSE_HELP = "Print the device report; without it the exit code is the only output"
_SNAPSHOT_HELP = "Read devices from a JSON snapshot instead of the live system"
_REQUIRE_HELP = "Exit with 255 when no catalog device is connected"


def _build_service(snapshot: Path | None = None) -> WinusbService:
    backend = SnapshotBackend(snapshot) if snapshot is not None else None
    service = WinusbService(backend=backend)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _run_check(
    mode: QueryMode,
    *,
    list_all: bool,
    verbose: bool,
    snapshot: Path | None,
    require_device: bool,
) -> None:
    try:
        service = _build_service(snapshot)
        result = service.check(mode, list_all=list_all)
    except WinusbctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=ERROR_EXIT_CODE) from None

    if verbose or list_all:
        typer.echo(result.report_text, nl=False)
    raise typer.Exit(code=result.exit_status(require_device=require_device))


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("check-driver")
def check_driver(
    list_all: bool = typer.Option(False, "--list-all", "-l", help=_LIST_ALL_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=_VERBOSE_HELP),
    snapshot: Path | None = typer.Option(None, "--snapshot", help=_SNAPSHOT_HELP),
    require_device: bool = typer.Option(False, "--require-device", help=_REQUIRE_HELP),
) -> None:
    """Check connected devices and exit with a bitmask of the drivers to install."""
    _run_check(
        QueryMode.CHECK_DRIVER,
        list_all=list_all,
        verbose=verbose,
        snapshot=snapshot,
        require_device=require_device,
    )


@app.command("check-exist")
def check_exist(
    list_all: bool = typer.Option(False, "--list-all", "-l", help=_LIST_ALL_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help=_VERBOSE_HELP),
    snapshot: Path | None = typer.Option(None, "--snapshot", help=_SNAPSHOT_HELP),
    require_device: bool = typer.Option(False, "--require-device", help=_REQUIRE_HELP),
) -> None:
    """Check which known devices are connected and exit with their bitmask."""
    _run_check(
        QueryMode.CHECK_EXIST,
        list_all=list_all,
        verbose=verbose,
        snapshot=snapshot,
        require_device=require_device,
    )


@app.command("catalog")
def list_catalog() -> None:
    """List known devices and the driver checks applied to them."""
    try:
        service = _build_service()
        entries = service.list_entries()
        if not entries:
            typer.echo("No catalog entries loaded")
            raise typer.Exit(code=1)

        for entry in entries:
            typer.echo(
                f"{entry.id}: {entry.vendor_id:04x}:{entry.product_id:04x}:"
                f"{entry.interface_index:x}:{int(entry.is_composite)} "
                f"[{entry.role.value}] {entry.description}"
            )
            for check in entry.checks:
                driver = check.required_driver or "-"
                modes = ", ".join(sorted(m.value for m in check.modes))
                typer.echo(f"  {check.flag_bit:#04x} {check.predicate.value} {driver} ({modes})")
    except WinusbctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(
    snapshot: Path | None = typer.Option(None, "--snapshot", help=_SNAPSHOT_HELP),
) -> None:
    """List connected USB devices and the catalog entry each one matches."""
    try:
        service = _build_service(snapshot)
        devices = service.list_devices()
        if not devices:
            typer.echo("No USB devices found")
            return

        for device in devices:
            entry = service.catalog.match(device)
            matched = entry.id if entry else "<no-match>"
            typer.echo(
                f"{device.vendor_id:04x}:{device.product_id:04x}:{device.interface_index:x}:"
                f"{int(device.is_composite)} {device.current_driver or '-'} "
                f"{device.description} -> {matched}"
            )
    except WinusbctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("install")
def install(
    device: str = typer.Argument(..., help="Catalog entry id, see 'winusbctl catalog'"),
    cert: str | None = typer.Option(None, "--cert", help="Certificate to add as a Trusted Publisher"),
    extract_only: bool = typer.Option(False, "--extract-only", help="Only stage the driver package"),
    snapshot: Path | None = typer.Option(None, "--snapshot", help=_SNAPSHOT_HELP),
) -> None:
    """Install the WinUSB driver for a connected device.

    Needs an elevated shell. Devices already bound to WinUSB are skipped.
    """
    try:
        service = _build_service(snapshot)
        outcome = service.install(device, cert_name=cert, extract_only=extract_only)
    except WinusbctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    for warning in outcome.warnings:
        typer.echo(f"Warning: {warning}", err=True)

    entry = outcome.entry
    if outcome.status is InstallStatus.EXTRACTED:
        typer.echo(f"Extracted driver for {entry.id} to {entry.install.directory if entry.install else '-'}")
    elif outcome.status is InstallStatus.NOT_CONNECTED:
        typer.echo(f"{entry.description}: not connected, please connect before installing driver.")
        raise typer.Exit(code=1)
    elif outcome.status is InstallStatus.ALREADY_INSTALLED:
        typer.echo(f"{entry.description}: {entry.required_driver} already installed, skipping")
    else:
        typer.echo(f"{entry.description}: driver installed")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
