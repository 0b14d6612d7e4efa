"""Stable public API for building tooling on top of winusbctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Iterable

from winusbctl.backends.base import ResultCode, UsbBackend
from winusbctl.backends.snapshot import SnapshotBackend
from winusbctl.backends.windows import WindowsBackend
from winusbctl.core.catalog import DeviceCatalog
from winusbctl.core.errors import (
    BackendError,
    CatalogLoadError,
    CatalogValidationError,
    DeviceSelectionError,
    DriverInstallError,
    EnumerationError,
    InvalidQueryModeError,
    WinusbctlError,
)
from winusbctl.core.model import (
    AggregateResult,
    CatalogEntry,
    ClassificationResult,
    ConnectedDevice,
    DriverCheck,
    DriverPackage,
    FlagLegend,
    InstallOutcome,
    InstallStatus,
    Predicate,
    QueryMode,
    Role,
    WdiLogLevel,
)
from winusbctl.core.service import WinusbService

__all__ = [
    "WinusbctlError",
    "BackendError",
    "CatalogLoadError",
    "CatalogValidationError",
    "DeviceSelectionError",
    "DriverInstallError",
    "EnumerationError",
    "InvalidQueryModeError",
    "AggregateResult",
    "CatalogEntry",
    "ClassificationResult",
    "ConnectedDevice",
    "DriverCheck",
    "DriverPackage",
    "FlagLegend",
    "InstallOutcome",
    "InstallStatus",
    "Predicate",
    "QueryMode",
    "Role",
    "WdiLogLevel",
    "DeviceCatalog",
    "ResultCode",
    "UsbBackend",
    "SnapshotBackend",
    "WindowsBackend",
    "Client",
]


class Client:
    """Public client for interacting with winusbctl core capabilities.

    A `Client` instance wraps catalog loading, device enumeration,
    classification and driver installation behind a stable API intended for
    installers, CI jobs and scripts. `classify` performs no I/O and can be
    fed a snapshot obtained elsewhere.
    """

    def __init__(
        self,
        *,
        backend: UsbBackend | None = None,
        catalog: DeviceCatalog | None = None,
    ) -> None:
        self._service = WinusbService(backend=backend, catalog=catalog)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def catalog(self) -> DeviceCatalog:
        return self._service.catalog

    def list_entries(self) -> list[CatalogEntry]:
        return self._service.list_entries()

    def list_devices(self) -> list[ConnectedDevice]:
        return self._service.list_devices()

    def classify(
        self,
        snapshot: Iterable[ConnectedDevice],
        mode: QueryMode | str,
        *,
        list_all: bool = False,
    ) -> AggregateResult:
        return self._service.classify(snapshot, mode, list_all=list_all)

    def check(self, mode: QueryMode | str, *, list_all: bool = False) -> AggregateResult:
        return self._service.check(mode, list_all=list_all)

    def check_drivers(self, *, list_all: bool = False) -> AggregateResult:
        return self._service.check_drivers(list_all=list_all)

    def check_existence(self, *, list_all: bool = False) -> AggregateResult:
        return self._service.check_existence(list_all=list_all)

    def install(
        self,
        entry_id: str,
        *,
        cert_name: str | None = None,
        extract_only: bool = False,
    ) -> InstallOutcome:
        return self._service.install(entry_id, cert_name=cert_name, extract_only=extract_only)
