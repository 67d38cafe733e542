from __future__ import annotations

import errno as _errno
from typing import Optional


class SerialConsoleError(Exception):
    """Base class for failures that end a console run."""


class NoPortsFound(SerialConsoleError):
    pass


class NoPortSelected(SerialConsoleError):
    pass


class ConfigurationError(SerialConsoleError):
    pass


class UnsupportedPlatform(SerialConsoleError):
    pass


class TerminalSetupError(SerialConsoleError):
    pass


class PortOpenError(SerialConsoleError):
    """
    Device path could not be opened.
    Args:
        port (str): Device path that was requested
        reason (str): Short, user-facing reason
    """

    def __init__(self, port: str, reason: str) -> None:
        super().__init__(f"Could not open serial port {port}: {reason}")
        self.port = port
        self.reason = reason


class FatalIOError(SerialConsoleError):
    """Read/write failure on the device or terminal; ends the session."""

    def __init__(self, cause: OSError) -> None:
        super().__init__(f"i/o error: {_errno_name(cause.errno)}")
        self.cause = cause

    @property
    def name(self) -> str:
        return _errno_name(self.cause.errno)


def _errno_name(code: Optional[int]) -> str:
    if code is None:
        return "UNKNOWN"
    return _errno.errorcode.get(code, str(code))
