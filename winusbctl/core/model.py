"""Core data models used across loader, engine, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum

ERROR_EXIT_CODE = 0x80
NO_DEVICE_EXIT_CODE = 0xFF


class QueryMode(str, Enum):
    CHECK_DRIVER = "check_driver"
    CHECK_EXIST = "check_exist"


class Role(str, Enum):
    PRIMARY = "primary"
    SECONDARY_UNUSED = "secondary_unused"
    VIRTUAL_COM_PORT = "virtual_com_port"


class Predicate(str, Enum):
    """How a check decides whether a matched device is flagged under check_driver."""

    MISSING_OR_WRONG = "missing_or_wrong"
    PRESENT = "present"
    ABSENT = "absent"


class WdiLogLevel(IntEnum):
    """Verbosity passed to the libwdi installer."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    NONE = 4


ALL_MODES: frozenset[QueryMode] = frozenset(QueryMode)


@dataclass(frozen=True)
class DriverCheck:
    required_driver: str | None
    flag_bit: int
    predicate: Predicate
    tag: str = ""
    modes: frozenset[QueryMode] = ALL_MODES


@dataclass(frozen=True)
class DriverPackage:
    inf_name: str
    directory: str


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    vendor_id: int
    product_id: int
    interface_index: int
    is_composite: bool
    description: str
    role: Role
    checks: tuple[DriverCheck, ...]
    modes: frozenset[QueryMode] = ALL_MODES
    install: DriverPackage | None = None

    @property
    def key(self) -> tuple[int, int, int, bool]:
        return (self.vendor_id, self.product_id, self.interface_index, self.is_composite)

    @property
    def required_driver(self) -> str | None:
        return self.checks[0].required_driver if self.checks else None

    @property
    def flag_bit(self) -> int:
        return self.checks[0].flag_bit if self.checks else 0


@dataclass(frozen=True)
class FlagLegend:
    bit: int
    exists_message: str | None
    install_message: str | None

    def message_for(self, mode: QueryMode) -> str | None:
        if mode is QueryMode.CHECK_EXIST:
            return self.exists_message
        return self.install_message


@dataclass(frozen=True)
class ConnectedDevice:
    vendor_id: int
    product_id: int
    interface_index: int
    is_composite: bool
    current_driver: str | None
    hardware_id: str | None = None
    device_id: str | None = None
    description: str = ""

    @property
    def key(self) -> tuple[int, int, int, bool]:
        return (self.vendor_id, self.product_id, self.interface_index, self.is_composite)


@dataclass(frozen=True)
class ClassificationResult:
    device: ConnectedDevice
    matched_entry: CatalogEntry | None
    flagged: bool
    flag_bits: int
    tags: tuple[str, ...]
    report_line: str | None


@dataclass(frozen=True)
class AggregateResult:
    mode: QueryMode
    bitmask: int
    any_match_found: bool
    results: tuple[ClassificationResult, ...]
    report_text: str

    def exit_status(self, *, require_device: bool = False) -> int:
        if require_device and not self.any_match_found:
            return NO_DEVICE_EXIT_CODE
        return self.bitmask & 0xFF


@dataclass(frozen=True)
class EnumerateOptions:
    list_all: bool = True
    list_hubs: bool = True
    trim_whitespaces: bool = True


@dataclass(frozen=True)
class PrepareOptions:
    driver_type: str = "winusb"
    vendor_name: str | None = None
    timeout_s: float = 60.0
    log_level: WdiLogLevel = WdiLogLevel.WARNING


@dataclass(frozen=True)
class InstallOptions:
    driver_type: str = "winusb"
    timeout_s: float = 120.0
    log_level: WdiLogLevel = WdiLogLevel.WARNING


@dataclass(frozen=True)
class CertificateOptions:
    store: str = "TrustedPublisher"


class InstallStatus(str, Enum):
    EXTRACTED = "extracted"
    NOT_CONNECTED = "not_connected"
    ALREADY_INSTALLED = "already_installed"
    INSTALLED = "installed"


@dataclass(frozen=True)
class InstallOutcome:
    entry: CatalogEntry
    status: InstallStatus
    device: ConnectedDevice | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)
