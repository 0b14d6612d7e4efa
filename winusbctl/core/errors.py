"""Domain-specific errors for winusbctl."""


class WinusbctlError(Exception):
    """Base error for winusbctl."""


class CatalogValidationError(WinusbctlError):
    """Raised when a catalog file or table does not conform to schema or semantics."""


class CatalogLoadError(WinusbctlError):
    """Raised when loading catalog sources fails."""


class InvalidQueryModeError(WinusbctlError, ValueError):
    """Raised when classification is asked for an unsupported query mode."""


class EnumerationError(WinusbctlError):
    """Raised when the connected USB device list cannot be obtained."""


class DeviceSelectionError(WinusbctlError):
    """Raised when an install target cannot be resolved to a catalog entry."""


class BackendError(WinusbctlError):
    """Raised when a backend tool is missing or unusable."""


class DriverInstallError(WinusbctlError):
    """Raised when staging or installing a driver package fails."""

    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.code = code
