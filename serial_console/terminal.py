"""
Raw, non-blocking terminal handling.

TerminalSession puts the controlling terminal into raw mode for the length of
a `with` block and puts the original settings back on the way out, however
the block is left.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from .errors import TerminalSetupError, UnsupportedPlatform

if os.name == "posix":
    import fcntl
    import termios

_logger = logging.getLogger(__name__)

# indices into the termios attribute list
IFLAG, OFLAG, CFLAG, LFLAG, ISPEED, OSPEED, CC = range(7)


@dataclass(frozen=True)
class TerminalSavedState:
    """Terminal attributes and descriptor flags as they were before raw mode."""
    attributes: List
    flags: int


def _require_posix() -> None:
    if os.name != "posix":
        raise UnsupportedPlatform("Raw terminal mode is not supported on this platform.")


def set_nonblocking(fd: int) -> None:
    """Make reads on `fd` return immediately when nothing is available."""
    _require_posix()
    try:
        flags = fcntl.fcntl(fd, fcntl.F_GETFL)
        fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)
    except OSError as e:
        raise TerminalSetupError(f"Cannot make fd {fd} non-blocking: {e}") from e


def enter_raw(fd: int) -> TerminalSavedState:
    """
    Switch a terminal to raw, non-blocking mode.
    Args:
        fd (int): terminal file descriptor
    Returns:
        TerminalSavedState: settings to hand back to restore_terminal()
    Raises:
        UnsupportedPlatform: not a POSIX system
        TerminalSetupError: `fd` is not a terminal or cannot be reconfigured
    """
    _require_posix()
    try:
        original = termios.tcgetattr(fd)
        flags = fcntl.fcntl(fd, fcntl.F_GETFL)
    except (termios.error, OSError) as e:
        raise TerminalSetupError(f"Cannot use fd {fd} as a terminal: {e}") from e

    settings = original[:CC] + [list(original[CC])]
    settings[IFLAG] = termios.IGNBRK  # ignore BREAK, nothing else
    settings[OFLAG] = 0
    settings[LFLAG] = 0
    settings[CC][termios.VMIN] = 1
    settings[CC][termios.VTIME] = 0
    try:
        termios.tcsetattr(fd, termios.TCSANOW, settings)
        fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)
    except (termios.error, OSError) as e:
        restore_terminal(TerminalSavedState(attributes=original, flags=flags), fd)
        raise TerminalSetupError(f"Cannot switch fd {fd} to raw mode: {e}") from e
    _logger.debug("Terminal fd %d switched to raw mode", fd)
    return TerminalSavedState(attributes=original, flags=flags)


def restore_terminal(state: TerminalSavedState, fd: int) -> None:
    termios.tcsetattr(fd, termios.TCSANOW, state.attributes)
    fcntl.fcntl(fd, fcntl.F_SETFL, state.flags)
    _logger.debug("Terminal fd %d restored", fd)


class TerminalSession:
    """
    Context manager holding a terminal in raw mode.

    The saved settings are applied back exactly once: on leaving the `with`
    block, or on the first explicit call to restore().
    """

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self._saved: Optional[TerminalSavedState] = None

    @property
    def active(self) -> bool:
        return self._saved is not None

    def __enter__(self) -> "TerminalSession":
        self._saved = enter_raw(self.fd)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()

    def restore(self) -> None:
        if self._saved is None:
            return
        saved, self._saved = self._saved, None
        try:
            restore_terminal(saved, self.fd)
        except (termios.error, OSError) as e:
            # must not mask whatever ended the session
            _logger.error(
                "Failed to restore terminal settings: %s. Try resetting your terminal!", e
            )
