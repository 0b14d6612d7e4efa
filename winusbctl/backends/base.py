"""Backend interfaces for USB enumeration and driver installation."""

from __future__ import annotations

from enum import IntEnum
from typing import Protocol

from winusbctl.core.model import (
    CatalogEntry,
    CertificateOptions,
    ConnectedDevice,
    EnumerateOptions,
    InstallOptions,
    PrepareOptions,
)


class ResultCode(IntEnum):
    """Result codes shared with libwdi; zero is success."""

    SUCCESS = 0
    IO = -1
    INVALID_PARAM = -2
    ACCESS = -3
    NO_DEVICE = -4
    NOT_FOUND = -5
    BUSY = -6
    TIMEOUT = -7
    OVERFLOW = -8
    PENDING_INSTALLATION = -9
    INTERRUPTED = -10
    RESOURCE = -11
    NOT_SUPPORTED = -12
    EXISTS = -13
    USER_CANCEL = -14
    NEEDS_ADMIN = -15
    WOW64 = -16
    INF_SYNTAX = -17
    CAT_MISSING = -18
    UNSIGNED = -19
    OTHER = -99


_MESSAGES = {
    ResultCode.SUCCESS: "Success",
    ResultCode.IO: "Input/output error",
    ResultCode.INVALID_PARAM: "Invalid parameter",
    ResultCode.ACCESS: "Access denied (insufficient permissions)",
    ResultCode.NO_DEVICE: "No such device (it may have been disconnected)",
    ResultCode.NOT_FOUND: "Entity not found",
    ResultCode.BUSY: "Resource busy, or API call already running",
    ResultCode.TIMEOUT: "Operation timed out",
    ResultCode.OVERFLOW: "Overflow",
    ResultCode.PENDING_INSTALLATION: "Another installation is pending",
    ResultCode.INTERRUPTED: "System call interrupted (perhaps due to signal)",
    ResultCode.RESOURCE: "Could not acquire resource (Insufficient memory, etc)",
    ResultCode.NOT_SUPPORTED: "Operation not supported or unimplemented on this platform",
    ResultCode.EXISTS: "Entity already exists",
    ResultCode.USER_CANCEL: "Cancelled by user",
    ResultCode.NEEDS_ADMIN: "Couldn't run installer with required privileges",
    ResultCode.WOW64: "Attempted to run the 32 bit installer on 64 bit",
    ResultCode.INF_SYNTAX: "Bad inf syntax",
    ResultCode.CAT_MISSING: "Missing cat file",
    ResultCode.UNSIGNED: "System policy prevents the installation of unsigned drivers",
    ResultCode.OTHER: "Other error",
}


def strerror(code: int) -> str:
    try:
        return _MESSAGES[ResultCode(code)]
    except ValueError:
        return f"Unknown error {code}"


class UsbBackend(Protocol):
    def enumerate(self, options: EnumerateOptions) -> list[ConnectedDevice]:
        """Return one snapshot of connected devices or raise EnumerationError."""

    def prepare_driver(
        self,
        entry: CatalogEntry,
        directory: str,
        inf_name: str,
        options: PrepareOptions,
    ) -> int:
        """Stage a driver package for entry and return a result code."""

    def install_driver(
        self,
        entry: CatalogEntry,
        device: ConnectedDevice,
        directory: str,
        inf_name: str,
        options: InstallOptions,
    ) -> int:
        """Install a staged driver for a connected device and return a result code."""

    def install_trusted_certificate(self, name: str, options: CertificateOptions) -> int:
        """Install a trust certificate and return a result code."""

    def strerror(self, code: int) -> str:
        """Map a result code to a message."""
