"""Check and install WinUSB drivers for SiFive debug adapters."""

__version__ = "0.1.0"
