from __future__ import annotations

import logging
import sys
from typing import Optional

import click

from .config import DEFAULT_CONFIG_PATH, Settings, load_config
from .device import CONTROL_FLOWS, PARITIES, STOP_BITS, open_device
from .discovery import auto_select_port
from .errors import SerialConsoleError
from .forwarding import ForwardingLoop
from .session import LoopOutcome, Session
from .terminal import TerminalSession, set_nonblocking

_logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    if logging.getLogger().hasHandlers():
        return
    # trailing \r keeps lines aligned while the terminal is raw
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s\r",
    )


def run_session(device_fd: int, settings: Settings) -> LoopOutcome:
    """
    Bridge the device and the controlling terminal until the user quits.

    The terminal is put back into its original mode before this returns or
    raises.
    """
    stdin_fd = sys.stdin.fileno()
    sys.stdout.flush()
    sys.stderr.flush()

    set_nonblocking(device_fd)
    with TerminalSession(stdin_fd):
        session = Session(
            device_fd=device_fd,
            input_fd=stdin_fd,
            output_fd=sys.stdout.fileno(),
            diagnostic_fd=sys.stderr.fileno(),
            local_echo=settings.echo,
        )
        session.report("Connected. Use C-a C-q to exit.\r\n")
        loop = ForwardingLoop(
            session,
            command_timeout=settings.command_timeout,
            poll_interval=settings.poll_interval,
        )
        return loop.run()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-P", "--port", help="Serial port (e.g., /dev/ttyUSB0). If not specified, a menu of detected ports is shown.")
@click.option("-b", "--baud", type=int, help="Baud rate  [default: 115200]")
@click.option("-s", "--stop-bits", type=click.Choice(list(STOP_BITS)), help="Stop bits  [default: one]")
@click.option("-d", "--data-bits", type=click.IntRange(5, 8), help="Data bits  [default: 8]")
@click.option("-p", "--parity", type=click.Choice(list(PARITIES)), help="Parity  [default: none]")
@click.option("-c", "--control-flow", type=click.Choice(list(CONTROL_FLOWS)), help="Flow control  [default: none]")
@click.option("-e", "--echo", is_flag=True, default=False, help="Echo typed input locally")
@click.option("--config", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True, help="TOML config file")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging")
def main(port: Optional[str], baud: Optional[int], stop_bits: Optional[str], data_bits: Optional[int],
         parity: Optional[str], control_flow: Optional[str], echo: bool, config_path: str,
         verbose: bool) -> None:
    """Interactive serial terminal.

    Everything typed is sent to the device and everything the device sends is
    written to the terminal. Press Ctrl-A to open the command window, then:

    \b
      Ctrl-Q, Ctrl-X, q or x   quit
      Ctrl-A                   send a literal Ctrl-A

    Examples:

    \b
      # Pick a port from a menu
      serial-console

    \b
      # Specific port, 9600 8E1 with local echo
      serial-console -P /dev/ttyUSB0 -b 9600 -p even -e
    """
    _configure_logging(verbose)

    try:
        settings = Settings.from_config(load_config(config_path)).override(
            baudrate=baud,
            data_bits=data_bits,
            stop_bits=stop_bits,
            parity=parity,
            control_flow=control_flow,
            echo=echo or None,
        )

        if not port:
            port = auto_select_port()

        with open_device(port, settings) as device:
            run_session(device.fileno(), settings)
    except SerialConsoleError as e:
        raise click.ClickException(str(e))

    click.echo("\r\nDisconnected.", err=True)


if __name__ == "__main__":
    main()
