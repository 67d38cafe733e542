"""
Serial port discovery and interactive selection.

Ports are enumerated with pyserial, sorted by display name and offered in a
numbered menu. Ports bound to a device-specific driver (USB-serial adapters,
CDC-ACM boards) are preferred over generic 8250 UART nodes as the default.
"""

from __future__ import annotations

import contextlib
import io
import logging
import os
import sys
from dataclasses import dataclass
from typing import IO, Callable, Iterable, Optional, Sequence, TextIO, Tuple

import click
from serial.tools import list_ports  # type: ignore

from .errors import NoPortSelected, NoPortsFound

_logger = logging.getLogger(__name__)

GENERIC_UART_DRIVER = "serial8250"


@dataclass(frozen=True)
class PortDescriptor:
    """
    One OS-visible serial device.
    Fields:
        file_name: path used to open the device (e.g. /dev/ttyUSB0)
        display_name: name shown in the menu (e.g. ttyUSB0)
        driver: kernel driver bound to the device, when known
    """
    file_name: str
    display_name: str
    driver: Optional[str] = None


def _driver_name(port_info) -> Optional[str]:
    """Return the driver behind a pyserial ListPortInfo (Linux sysfs only)."""
    device_path = getattr(port_info, "device_path", None)
    if not device_path:
        return None
    link = os.path.join(device_path, "driver")
    if not os.path.islink(link):
        return None
    return os.path.basename(os.path.realpath(link))


def sort_ports(ports: Iterable[PortDescriptor]) -> Tuple[PortDescriptor, ...]:
    # sorted() is stable, so equal names keep enumeration order
    return tuple(sorted(ports, key=lambda p: p.display_name.lower()))


def discover_ports(comports: Optional[Callable[[], Iterable]] = None) -> Tuple[PortDescriptor, ...]:
    """
    Enumerate serial devices.
    Args:
        comports: enumeration function (default: pyserial's list_ports.comports)
    Returns:
        Tuple[PortDescriptor, ...]: ports sorted case-insensitively by display name
    """
    comports = comports or list_ports.comports
    ports = []
    for info in comports():
        ports.append(PortDescriptor(
            file_name=str(info.device),
            display_name=str(info.name or info.device),
            driver=_driver_name(info),
        ))
    ports = sort_ports(ports)
    _logger.debug("Discovered %d port(s): %s", len(ports), [p.file_name for p in ports])
    return ports


def default_selection(ports: Sequence[PortDescriptor]) -> int:
    """1-based index of the last port with a non-generic driver, or 0 if there is none."""
    selection = 0
    for index, port in enumerate(ports, 1):
        if port.driver is not None and port.driver != GENERIC_UART_DRIVER:
            selection = index
    return selection


def format_port(index: int, port: PortDescriptor) -> str:
    line = f"#{index:<2} {port.display_name} "
    if port.file_name == port.display_name:
        if port.driver is not None:
            line += f"(driver={port.driver})"
    elif port.driver is not None:
        line += f"(path={port.file_name}, driver={port.driver})"
    else:
        line += f"(path={port.file_name})"
    return line


def parse_selection(text: str, count: int, default: int) -> Optional[int]:
    """
    Interpret one line typed at the selection prompt.
    Returns:
        Optional[int]: 1-based index, or None when the prompt should be repeated
    """
    text = text.strip("\r\n\t ")
    if not text:
        return default or None
    try:
        selection = int(text, 10)
    except ValueError:
        return None
    if selection < 1 or selection > count:
        return None
    return selection


def select_port(
    ports: Sequence[PortDescriptor],
    input_stream: Optional[TextIO] = None,
    output_stream: Optional[TextIO] = None,
) -> str:
    """
    Show the port menu and read a choice.
    Args:
        ports: sorted candidate list (must not be empty)
        input_stream: where the answer is read from (default: stdin)
        output_stream: where the menu is written (default: stderr)
    Returns:
        str: file_name of the chosen port
    Raises:
        NoPortSelected: input ended and there is no default to fall back on
    """
    output_stream = output_stream or sys.stderr
    reader = contextlib.nullcontext(input_stream) if input_stream is not None else _open_stdin()

    default = default_selection(ports)
    for index, port in enumerate(ports, 1):
        click.echo(format_port(index, port), file=output_stream)

    with reader as stream:
        selection = _prompt(stream, output_stream, len(ports), default)

    chosen = ports[selection - 1]
    _logger.debug("Selected port #%d: %s", selection, chosen.file_name)
    return chosen.file_name


def _open_stdin():
    """
    Unbuffered reader on the stdin descriptor.

    Anything typed after the answer stays in the descriptor for the terminal
    session instead of sitting in sys.stdin's read-ahead buffer.
    """
    try:
        fd = sys.stdin.fileno()
    except (AttributeError, io.UnsupportedOperation):
        # replaced stdin without a descriptor (e.g. click's CliRunner)
        return contextlib.nullcontext(sys.stdin)
    return os.fdopen(fd, "rb", buffering=0, closefd=False)


def _prompt(stream: IO, output_stream: TextIO, count: int, default: int) -> int:
    while True:
        click.echo(f"Select port [{default}]: ", file=output_stream, nl=False)
        line = stream.readline()
        if isinstance(line, bytes):
            line = line.decode("utf-8", "replace")
        if not line:
            # EOF
            if default == 0:
                raise NoPortSelected("No port selected.")
            return default
        selection = parse_selection(line, count, default)
        if selection is not None:
            return selection


def auto_select_port(
    comports: Optional[Callable[[], Iterable]] = None,
    input_stream: Optional[TextIO] = None,
    output_stream: Optional[TextIO] = None,
) -> str:
    """Discover ports and let the user pick one."""
    ports = discover_ports(comports)
    if not ports:
        raise NoPortsFound("No serial port could be auto-detected. Use --port <name> to provide the port.")
    return select_port(ports, input_stream=input_stream, output_stream=output_stream)
