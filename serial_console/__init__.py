"""Serial Console package.

Interactive serial terminal: pick a port, put the terminal into raw mode and
bridge bytes between keyboard, screen and device using pyserial.
"""

__all__ = [
    "CommandMode",
    "ForwardingLoop",
    "LoopOutcome",
    "PortDescriptor",
    "Session",
    "Settings",
    "TerminalSession",
    "auto_select_port",
    "discover_ports",
]

from .command_mode import CommandMode
from .config import Settings
from .discovery import PortDescriptor, auto_select_port, discover_ports
from .forwarding import ForwardingLoop
from .session import LoopOutcome, Session
from .terminal import TerminalSession

__version__ = "0.1.0"
