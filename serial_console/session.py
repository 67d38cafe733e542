from __future__ import annotations

import enum
import os
import select
from dataclasses import dataclass
from typing import Sequence

from .errors import FatalIOError

READ_SIZE: int = 1024
ESCAPE_BYTE: int = 0x01  # Ctrl-A


class LoopOutcome(enum.Enum):
    """Result of one forwarding step or one command sub-mode run."""
    CONTINUE = "continue"
    CLEAN_EXIT = "clean_exit"


def read_chunk(fd: int, size: int = READ_SIZE) -> bytes:
    """
    Non-blocking read.
    Returns:
        bytes: data read, or b"" when nothing is available
    Raises:
        FatalIOError: any failure other than "would block"
    """
    try:
        return os.read(fd, size)
    except BlockingIOError:
        return b""
    except OSError as e:
        raise FatalIOError(e) from e


def write_all(fd: int, data: bytes) -> None:
    """Write all of `data`, waiting for `fd` to drain when it would block."""
    view = memoryview(data)
    while view:
        try:
            written = os.write(fd, view)
        except BlockingIOError:
            wait_writable(fd)
            continue
        except OSError as e:
            raise FatalIOError(e) from e
        view = view[written:]


def wait_readable(fds: Sequence[int], timeout: float) -> None:
    try:
        select.select(fds, [], [], timeout)
    except OSError as e:
        raise FatalIOError(e) from e


def wait_writable(fd: int, timeout: float = 0.2) -> None:
    try:
        select.select([], [fd], [], timeout)
    except OSError as e:
        raise FatalIOError(e) from e


@dataclass
class Session:
    """
    Descriptors bridged by one console run.
    Fields:
        device_fd: serial device
        input_fd: keyboard input
        output_fd: where device data (and local echo) goes
        diagnostic_fd: where command sub-mode messages go
        local_echo: echo typed input to output_fd
    """
    device_fd: int
    input_fd: int
    output_fd: int
    diagnostic_fd: int
    local_echo: bool = False

    def send(self, data: bytes) -> None:
        """Forward typed bytes to the device, echoing them first if enabled."""
        if self.local_echo:
            write_all(self.output_fd, data)
        write_all(self.device_fd, data)

    def report(self, text: str) -> None:
        write_all(self.diagnostic_fd, text.encode("ascii", "backslashreplace"))
