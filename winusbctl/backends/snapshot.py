"""Backend that replays a device list recorded as JSON."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from winusbctl.backends.base import ResultCode, strerror
from winusbctl.core.errors import EnumerationError
from winusbctl.core.model import (
    CatalogEntry,
    CertificateOptions,
    ConnectedDevice,
    EnumerateOptions,
    InstallOptions,
    PrepareOptions,
)

LOGGER = logging.getLogger(__name__)


def _usb_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a USB id")
    if isinstance(value, int):
        return value
    return int(str(value).strip().lower().removeprefix("0x"), 16)


def _composite(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ValueError(f"composite must be true or false, got {value!r}")


def device_from_record(record: dict[str, Any]) -> ConnectedDevice:
    driver = record.get("driver")
    return ConnectedDevice(
        vendor_id=_usb_id(record["vid"]),
        product_id=_usb_id(record["pid"]),
        interface_index=int(record.get("interface", 0)),
        is_composite=_composite(record.get("composite", False)),
        current_driver=str(driver) if driver else None,
        hardware_id=record.get("hardware_id"),
        device_id=record.get("device_id"),
        description=str(record.get("description", "")),
    )


class SnapshotBackend:
    """Enumerate from a JSON file instead of the live system.

    The file holds a list of objects with ``vid``, ``pid``, ``interface``,
    ``composite``, ``driver``, ``hardware_id``, ``device_id`` and
    ``description``. Ids may be integers or hex strings. Rows that cannot be
    read are skipped so a single bad record does not hide the rest.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def enumerate(self, options: EnumerateOptions) -> list[ConnectedDevice]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise EnumerationError(f"Could not read device snapshot {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise EnumerationError(f"Invalid JSON in device snapshot {self.path}: {exc}") from exc

        if isinstance(data, dict):
            data = data.get("devices", [])
        if not isinstance(data, list):
            raise EnumerationError(f"Device snapshot {self.path} must contain a list of devices")

        devices: list[ConnectedDevice] = []
        for index, record in enumerate(data):
            if not isinstance(record, dict):
                LOGGER.debug("Skipping snapshot row %d: not an object", index)
                continue
            try:
                device = device_from_record(record)
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.debug("Skipping snapshot row %d: %s", index, exc)
                continue
            if not options.list_all and device.current_driver is not None:
                continue
            if options.trim_whitespaces:
                device = replace(device, description=device.description.strip())
            devices.append(device)
        return devices

    def prepare_driver(
        self,
        entry: CatalogEntry,
        directory: str,
        inf_name: str,
        options: PrepareOptions,
    ) -> int:
        return ResultCode.NOT_SUPPORTED

    def install_driver(
        self,
        entry: CatalogEntry,
        device: ConnectedDevice,
        directory: str,
        inf_name: str,
        options: InstallOptions,
    ) -> int:
        return ResultCode.NOT_SUPPORTED

    def install_trusted_certificate(self, name: str, options: CertificateOptions) -> int:
        return ResultCode.NOT_SUPPORTED

    def strerror(self, code: int) -> str:
        return strerror(code)
