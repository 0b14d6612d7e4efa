"""Windows backend: PnP enumeration through PowerShell, installs through libwdi tools."""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
from collections.abc import Sequence
from typing import Any

from winusbctl.backends.base import ResultCode, strerror
from winusbctl.core.errors import BackendError, EnumerationError
from winusbctl.core.model import (
    CatalogEntry,
    CertificateOptions,
    ConnectedDevice,
    EnumerateOptions,
    InstallOptions,
    PrepareOptions,
)

LOGGER = logging.getLogger(__name__)

_USB_ID_RE = re.compile(
    r"^USB\\VID_([0-9A-F]{4})&PID_([0-9A-F]{4})(?:&MI_([0-9A-F]{2}))?",
    re.IGNORECASE,
)
_HUB_SERVICES = {"usbhub", "usbhub3", "usbroothub", "roothub"}
_DRIVER_TYPES = {"winusb": 0, "libusb0": 1, "libusbk": 2, "usbser": 3, "user": 4}

_ENUMERATE_SCRIPT = r"""
Get-CimInstance Win32_PnPEntity -ErrorAction Stop |
Where-Object { $_.DeviceID -like 'USB\*' } |
Select-Object DeviceID, Name, Description, Service, HardwareID, PNPClass |
ConvertTo-Json -Depth 3
"""


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _signed_returncode(code: int) -> int:
    # Windows reports negative exit codes as unsigned 32-bit values.
    if code > 0x7FFFFFFF:
        return code - (1 << 32)
    return code


def _is_hub(record: dict[str, Any], device_id: str) -> bool:
    service = (record.get("Service") or "").lower()
    if service in _HUB_SERVICES:
        return True
    return "ROOT_HUB" in device_id.upper()


def parse_pnp_records(records: Sequence[Any], options: EnumerateOptions) -> list[ConnectedDevice]:
    devices: list[ConnectedDevice] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        device_id = record.get("DeviceID") or ""
        match = _USB_ID_RE.match(device_id)
        if not match:
            continue
        if not options.list_hubs and _is_hub(record, device_id):
            continue

        driver = record.get("Service") or None
        if not options.list_all and driver is not None:
            continue

        description = record.get("Name") or record.get("Description") or ""
        if options.trim_whitespaces:
            description = description.strip()

        hardware_ids = _as_list(record.get("HardwareID"))
        interface = match.group(3)
        devices.append(
            ConnectedDevice(
                vendor_id=int(match.group(1), 16),
                product_id=int(match.group(2), 16),
                interface_index=int(interface, 16) if interface else 0,
                is_composite=interface is not None,
                current_driver=driver,
                hardware_id=hardware_ids[0] if hardware_ids else None,
                device_id=device_id,
                description=description,
            )
        )
    return devices


class WindowsBackend:
    def __init__(
        self,
        *,
        powershell: str | None = None,
        wdi_simple: str | None = None,
        certutil: str = "certutil",
    ) -> None:
        self.powershell = powershell or os.environ.get("WINUSBCTL_POWERSHELL", "powershell")
        self.wdi_simple = wdi_simple or os.environ.get("WINUSBCTL_WDI_SIMPLE", "wdi-simple")
        self.certutil = certutil

    def enumerate(self, options: EnumerateOptions) -> list[ConnectedDevice]:
        cmd = [self.powershell, "-NoProfile", "-NonInteractive", "-Command", _ENUMERATE_SCRIPT]
        try:
            result = _run_command(cmd, timeout_s=60.0)
        except BackendError as exc:
            raise EnumerationError(f"USB device enumeration failed: {exc}") from exc
        except subprocess.TimeoutExpired as exc:
            raise EnumerationError("USB device enumeration timed out") from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise EnumerationError(f"USB device enumeration failed: {stderr or f'exit code {result.returncode}'}")

        stdout = (result.stdout or "").strip()
        if not stdout:
            return []
        try:
            records = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise EnumerationError(f"Could not parse PnP device list: {exc}") from exc
        return parse_pnp_records(_as_list(records), options)

    def _wdi_command(
        self,
        entry: CatalogEntry,
        directory: str,
        inf_name: str,
        driver_type: str,
        log_level: int,
    ) -> list[str]:
        type_id = _DRIVER_TYPES.get(driver_type.lower())
        if type_id is None:
            raise BackendError(f"Unsupported driver type '{driver_type}'")
        cmd = [
            self.wdi_simple,
            "--name",
            entry.description,
            "--inf",
            inf_name,
            "--dest",
            directory,
            "--vid",
            f"0x{entry.vendor_id:04x}",
            "--pid",
            f"0x{entry.product_id:04x}",
            "--type",
            str(type_id),
            "--log",
            str(int(log_level)),
            "--silent",
        ]
        if entry.is_composite:
            cmd.extend(["--iid", str(entry.interface_index)])
        return cmd

    def prepare_driver(
        self,
        entry: CatalogEntry,
        directory: str,
        inf_name: str,
        options: PrepareOptions,
    ) -> int:
        cmd = self._wdi_command(entry, directory, inf_name, options.driver_type, options.log_level)
        if options.vendor_name:
            cmd.extend(["--manufacturer", options.vendor_name])
        cmd.append("--extract")
        try:
            result = _run_command(cmd, timeout_s=options.timeout_s)
        except subprocess.TimeoutExpired:
            LOGGER.warning("Staging %s for %s timed out", inf_name, entry.id)
            return ResultCode.TIMEOUT
        return _signed_returncode(result.returncode)

    def install_driver(
        self,
        entry: CatalogEntry,
        device: ConnectedDevice,
        directory: str,
        inf_name: str,
        options: InstallOptions,
    ) -> int:
        cmd = self._wdi_command(entry, directory, inf_name, options.driver_type, options.log_level)
        cmd.extend(["--timeout", str(int(options.timeout_s * 1000))])
        try:
            result = _run_command(cmd, timeout_s=options.timeout_s + 10.0)
        except subprocess.TimeoutExpired:
            return ResultCode.TIMEOUT
        return _signed_returncode(result.returncode)

    def install_trusted_certificate(self, name: str, options: CertificateOptions) -> int:
        try:
            result = _run_command([self.certutil, "-addstore", options.store, name], timeout_s=30.0)
        except subprocess.TimeoutExpired:
            LOGGER.warning("certutil timed out adding %s", name)
            return ResultCode.TIMEOUT
        if result.returncode != 0:
            LOGGER.warning("certutil failed for %s: %s", name, (result.stderr or result.stdout or "").strip())
            return ResultCode.OTHER
        return ResultCode.SUCCESS

    def strerror(self, code: int) -> str:
        return strerror(code)


def _run_command(cmd: Sequence[str], *, timeout_s: float) -> subprocess.CompletedProcess[str]:
    executable = shutil.which(cmd[0]) or cmd[0]
    LOGGER.debug("Running %s", " ".join(cmd))
    try:
        return subprocess.run(
            [executable, *cmd[1:]],
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except FileNotFoundError as exc:
        raise BackendError(f"'{cmd[0]}' was not found. Install it or set its path in the environment.") from exc
