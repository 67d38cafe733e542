from __future__ import annotations

import time
from typing import Callable, Final

from .session import ESCAPE_BYTE, LoopOutcome, Session, read_chunk, wait_readable

COMMAND_TIMEOUT: Final[float] = 0.5

# Ctrl-Q, Ctrl-X, q, Q, x, X
QUIT_BYTES: Final[frozenset] = frozenset(b"\x11\x18qQxX")


class CommandMode:
    """
    Short command window opened by the escape byte.

    Within `timeout` seconds the next typed byte decides what happens:
        Ctrl-A           send a literal Ctrl-A to the device
        Ctrl-Q/Ctrl-X/q/x  end the session
        anything else    print ?[HH] and go back to forwarding
    If nothing is typed in time, forwarding resumes silently.
    """

    def __init__(
        self,
        session: Session,
        *,
        timeout: float = COMMAND_TIMEOUT,
        poll_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.clock = clock

    def run(self) -> LoopOutcome:
        deadline = self.clock() + self.timeout
        while True:
            now = self.clock()
            if now >= deadline:
                return LoopOutcome.CONTINUE
            if self.poll_interval:
                wait_readable((self.session.input_fd,), min(self.poll_interval, deadline - now))
            data = read_chunk(self.session.input_fd)
            if data:
                return self.dispatch(data[0])

    def dispatch(self, byte: int) -> LoopOutcome:
        if byte == ESCAPE_BYTE:
            self.session.send(bytes((ESCAPE_BYTE,)))
            return LoopOutcome.CONTINUE
        if byte in QUIT_BYTES:
            return LoopOutcome.CLEAN_EXIT
        self.session.report(f"?[{byte:02X}]")
        return LoopOutcome.CONTINUE
