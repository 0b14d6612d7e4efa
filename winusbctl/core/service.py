"""Service layer used by CLI and future UI frontends."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from winusbctl.backends.base import ResultCode, UsbBackend
from winusbctl.backends.windows import WindowsBackend
from winusbctl.core.catalog import DeviceCatalog
from winusbctl.core.catalog_loader import load_catalog
from winusbctl.core.classify import classify, coerce_mode
from winusbctl.core.errors import DeviceSelectionError, DriverInstallError
from winusbctl.core.model import (
    AggregateResult,
    CatalogEntry,
    CertificateOptions,
    ConnectedDevice,
    EnumerateOptions,
    InstallOptions,
    InstallOutcome,
    InstallStatus,
    PrepareOptions,
    QueryMode,
)

LOGGER = logging.getLogger(__name__)

SNAPSHOT_OPTIONS = EnumerateOptions(list_all=True, list_hubs=True, trim_whitespaces=True)


class WinusbService:
    def __init__(
        self,
        *,
        backend: UsbBackend | None = None,
        catalog: DeviceCatalog | None = None,
    ) -> None:
        self.load_warnings: tuple[str, ...] = ()
        if catalog is None:
            loaded = load_catalog()
            catalog = loaded.catalog
            self.load_warnings = loaded.warnings
        self.catalog = catalog
        self.backend = backend or WindowsBackend()

    def list_entries(self) -> list[CatalogEntry]:
        return sorted(self.catalog, key=lambda e: e.id)

    def list_devices(self, *, list_all: bool = True) -> list[ConnectedDevice]:
        options = SNAPSHOT_OPTIONS if list_all else EnumerateOptions(list_all=False)
        return self.backend.enumerate(options)

    def classify(
        self,
        snapshot: Iterable[ConnectedDevice],
        mode: QueryMode | str,
        *,
        list_all: bool = False,
    ) -> AggregateResult:
        return classify(self.catalog, snapshot, mode, list_all=list_all)

    def check(self, mode: QueryMode | str, *, list_all: bool = False) -> AggregateResult:
        query_mode = coerce_mode(mode)
        snapshot = self.list_devices()
        result = self.classify(snapshot, query_mode, list_all=list_all)
        LOGGER.info(
            "%s over %d device(s): bitmask=%#04x match=%s",
            query_mode.value,
            len(snapshot),
            result.bitmask,
            result.any_match_found,
        )
        return result

    def check_drivers(self, *, list_all: bool = False) -> AggregateResult:
        return self.check(QueryMode.CHECK_DRIVER, list_all=list_all)

    def check_existence(self, *, list_all: bool = False) -> AggregateResult:
        return self.check(QueryMode.CHECK_EXIST, list_all=list_all)

    def resolve_entry(self, entry_id: str) -> CatalogEntry:
        entry = self.catalog.get(entry_id)
        if entry is None:
            installable = ", ".join(e.id for e in self.list_entries() if e.install is not None)
            raise DeviceSelectionError(f"Unknown device '{entry_id}'. Installable: {installable}")
        if entry.install is None:
            raise DeviceSelectionError(f"Device '{entry_id}' has no driver package to install")
        return entry

    def install(
        self,
        entry_id: str,
        *,
        cert_name: str | None = None,
        extract_only: bool = False,
        prepare_options: PrepareOptions | None = None,
        install_options: InstallOptions | None = None,
    ) -> InstallOutcome:
        """Stage the entry's driver package and bind it to a connected device.

        The device is located through a fresh enumeration so the installer
        never prompts for hardware that is not plugged in. A device already
        bound to the entry's required driver is left alone. A certificate
        failure is reported as a warning and does not stop the install.
        """
        entry = self.resolve_entry(entry_id)
        package = entry.install
        if package is None:
            raise DeviceSelectionError(f"Device '{entry_id}' has no driver package to install")

        code = self.backend.prepare_driver(
            entry,
            package.directory,
            package.inf_name,
            prepare_options or PrepareOptions(),
        )
        if code != ResultCode.SUCCESS:
            raise DriverInstallError(
                f"Could not stage driver for '{entry.id}': {self.backend.strerror(code)}",
                code,
            )
        if extract_only:
            return InstallOutcome(entry=entry, status=InstallStatus.EXTRACTED)

        warnings: list[str] = []
        if cert_name is not None:
            code = self.backend.install_trusted_certificate(cert_name, CertificateOptions())
            if code != ResultCode.SUCCESS:
                warning = (
                    f"Attempted to install certificate '{cert_name}' as a Trusted Publisher: "
                    f"{self.backend.strerror(code)}"
                )
                LOGGER.warning(warning)
                warnings.append(warning)

        device = next(
            (d for d in self.backend.enumerate(SNAPSHOT_OPTIONS) if d.key == entry.key),
            None,
        )
        if device is None:
            return InstallOutcome(entry=entry, status=InstallStatus.NOT_CONNECTED, warnings=tuple(warnings))
        if entry.required_driver is not None and device.current_driver == entry.required_driver:
            LOGGER.info("%s already bound to %s", entry.id, entry.required_driver)
            return InstallOutcome(
                entry=entry,
                status=InstallStatus.ALREADY_INSTALLED,
                device=device,
                warnings=tuple(warnings),
            )

        LOGGER.info("Installing %s for %s", package.inf_name, entry.id)
        code = self.backend.install_driver(
            entry,
            device,
            package.directory,
            package.inf_name,
            install_options or InstallOptions(),
        )
        if code != ResultCode.SUCCESS:
            raise DriverInstallError(
                f"Driver installation failed for '{entry.id}': {self.backend.strerror(code)}",
                code,
            )
        return InstallOutcome(
            entry=entry,
            status=InstallStatus.INSTALLED,
            device=device,
            warnings=tuple(warnings),
        )
