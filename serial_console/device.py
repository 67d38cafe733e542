from __future__ import annotations

import errno
import logging
from typing import Dict

import serial  # type: ignore

from .config import Settings
from .errors import ConfigurationError, PortOpenError

_logger = logging.getLogger(__name__)

PARITIES: Dict[str, str] = {
    "none": serial.PARITY_NONE,
    "even": serial.PARITY_EVEN,
    "odd": serial.PARITY_ODD,
    "mark": serial.PARITY_MARK,
    "space": serial.PARITY_SPACE,
}

STOP_BITS: Dict[str, float] = {
    "one": serial.STOPBITS_ONE,
    "one_point_five": serial.STOPBITS_ONE_POINT_FIVE,
    "two": serial.STOPBITS_TWO,
}

# name -> (xonxoff, rtscts)
CONTROL_FLOWS: Dict[str, tuple] = {
    "none": (False, False),
    "software": (True, False),
    "hardware": (False, True),
}


def _lookup(table: Dict, name: str, what: str):
    try:
        return table[name.lower()]
    except KeyError:
        choices = ", ".join(table)
        raise ConfigurationError(f"Invalid {what} '{name}' (expected one of: {choices})") from None


def _open_failure_reason(exc: serial.SerialException) -> str:
    code = getattr(exc, "errno", None)
    if code == errno.ENOENT:
        return "file not found"
    if code in (errno.EACCES, errno.EPERM):
        return "access denied (missing permissions?)"
    return str(exc)


def serial_kwargs(settings: Settings) -> dict:
    """Translate Settings into serial.Serial keyword arguments."""
    xonxoff, rtscts = _lookup(CONTROL_FLOWS, settings.control_flow, "control flow")
    return {
        "baudrate": settings.baudrate,
        "bytesize": settings.data_bits,
        "parity": _lookup(PARITIES, settings.parity, "parity"),
        "stopbits": _lookup(STOP_BITS, settings.stop_bits, "stop bits"),
        "xonxoff": xonxoff,
        "rtscts": rtscts,
        "timeout": 0,
        "write_timeout": None,
    }


def open_device(port: str, settings: Settings) -> serial.Serial:
    """
    Open and configure a serial device.
    Args:
        port (str): device path
        settings (Settings): line settings
    Returns:
        serial.Serial: open port; use as a context manager to close it
    Raises:
        PortOpenError: the device could not be opened
        ConfigurationError: the line settings were rejected
    """
    kwargs = serial_kwargs(settings)
    try:
        device = serial.Serial(port=port, **kwargs)
    except serial.SerialException as e:
        raise PortOpenError(port, _open_failure_reason(e)) from None
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    _logger.debug("Opened %s with %s", port, kwargs)
    return device
