from __future__ import annotations

from pathlib import Path

import pytest

from winusbctl.core.catalog import DeviceCatalog
from winusbctl.core.model import (
    CatalogEntry,
    ConnectedDevice,
    DriverCheck,
    DriverPackage,
    FlagLegend,
    Predicate,
    Role,
)


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    return tmp_path


def olimex_entry(flag: int = 0x1, required: str | None = "WinUSB") -> CatalogEntry:
    return CatalogEntry(
        id="olimex",
        vendor_id=0x15BA,
        product_id=0x002A,
        interface_index=0,
        is_composite=True,
        description="Olimex ARM-USB-TINY-H (Interface 0)",
        role=Role.PRIMARY,
        checks=(
            DriverCheck(
                required_driver=required,
                flag_bit=flag,
                predicate=Predicate.MISSING_OR_WRONG if required else Predicate.PRESENT,
                tag="=> WinUSB",
            ),
        ),
        install=DriverPackage(inf_name="olimex.inf", directory="olimex_driver"),
    )


def device(
    vid: int = 0x15BA,
    pid: int = 0x002A,
    interface: int = 0,
    composite: bool = True,
    driver: str | None = None,
    description: str = "Olimex ARM-USB-TINY-H (Interface 0)",
) -> ConnectedDevice:
    return ConnectedDevice(
        vendor_id=vid,
        product_id=pid,
        interface_index=interface,
        is_composite=composite,
        current_driver=driver,
        hardware_id=f"USB\\VID_{vid:04X}&PID_{pid:04X}",
        device_id=f"USB\\VID_{vid:04X}&PID_{pid:04X}\\0001",
        description=description,
    )


@pytest.fixture
def olimex_catalog() -> DeviceCatalog:
    return DeviceCatalog(
        [olimex_entry()],
        [FlagLegend(bit=0x1, exists_message="OLIMEX_EXISTS", install_message="INSTALL_OLIMEX_WINUSB")],
    )


class FakeBackend:
    def __init__(self, devices: list[ConnectedDevice] | None = None) -> None:
        self.devices = list(devices or [])
        self.calls: list[tuple] = []
        self.prepare_code = 0
        self.install_code = 0
        self.cert_code = 0

    def enumerate(self, options):
        self.calls.append(("enumerate", options))
        return list(self.devices)

    def prepare_driver(self, entry, directory, inf_name, options):
        self.calls.append(("prepare", entry.id, directory, inf_name))
        return self.prepare_code

    def install_driver(self, entry, device, directory, inf_name, options):
        self.calls.append(("install", entry.id, device.device_id, inf_name))
        return self.install_code

    def install_trusted_certificate(self, name, options):
        self.calls.append(("cert", name))
        return self.cert_code

    def strerror(self, code):
        return f"error {code}"
