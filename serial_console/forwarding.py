from __future__ import annotations

import enum
import logging
import time
from typing import Callable

from .command_mode import COMMAND_TIMEOUT, CommandMode
from .session import ESCAPE_BYTE, LoopOutcome, Session, read_chunk, wait_readable, write_all

_logger = logging.getLogger(__name__)


class State(enum.Enum):
    NORMAL = "normal"
    COMMAND = "command"


class ForwardingLoop:
    """
    Bridges bytes between the device and the local terminal.

    Every step reads the device first and the keyboard second, so output from
    the device is never held up by local typing. A lone Ctrl-A from the
    keyboard opens a CommandMode window instead of being forwarded.
    """

    def __init__(
        self,
        session: Session,
        *,
        command_timeout: float = COMMAND_TIMEOUT,
        poll_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.command_timeout = command_timeout
        self.poll_interval = poll_interval
        self.clock = clock
        self.state = State.NORMAL

    def run(self) -> LoopOutcome:
        """Forward until the user quits; FatalIOError propagates."""
        while self.step() is not LoopOutcome.CLEAN_EXIT:
            pass
        _logger.debug("Forwarding loop finished on user request")
        return LoopOutcome.CLEAN_EXIT

    def step(self) -> LoopOutcome:
        session = self.session
        if self.poll_interval:
            wait_readable((session.device_fd, session.input_fd), self.poll_interval)

        data = read_chunk(session.device_fd)
        if data:
            write_all(session.output_fd, data)

        data = read_chunk(session.input_fd)
        if not data:
            return LoopOutcome.CONTINUE

        if len(data) == 1 and data[0] == ESCAPE_BYTE:
            return self._command()

        session.send(data)
        return LoopOutcome.CONTINUE

    def _command(self) -> LoopOutcome:
        self.state = State.COMMAND
        try:
            return CommandMode(
                self.session,
                timeout=self.command_timeout,
                poll_interval=self.poll_interval,
                clock=self.clock,
            ).run()
        finally:
            self.state = State.NORMAL
