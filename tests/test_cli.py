from __future__ import annotations

import errno
import fcntl
import os
import socket
import sys
import termios
import threading
import time
import unittest
from unittest import mock

import serial  # type: ignore
from click.testing import CliRunner

from serial_console.cli import main, run_session
from serial_console.config import Settings
from serial_console.errors import FatalIOError
from serial_console.session import LoopOutcome
from serial_console.terminal import LFLAG


def test_help():
    result = CliRunner().invoke(main, ["-h"])
    assert result.exit_code == 0
    for flag in ("--port", "--baud", "--stop-bits", "--data-bits", "--parity", "--control-flow", "--echo"):
        assert flag in result.output


def test_no_ports_found():
    runner = CliRunner()
    with runner.isolated_filesystem():
        with mock.patch("serial_console.discovery.list_ports.comports", return_value=[]):
            result = runner.invoke(main, [])
    assert result.exit_code == 1
    assert "No serial port could be auto-detected" in result.output


def test_port_open_failure():
    runner = CliRunner()
    exc = serial.SerialException(errno.ENOENT, "could not open port /dev/ttyNOPE")
    with runner.isolated_filesystem():
        with mock.patch("serial_console.device.serial.Serial", side_effect=exc):
            result = runner.invoke(main, ["-P", "/dev/ttyNOPE"])
    assert result.exit_code == 1
    assert "file not found" in result.output


def test_bad_config_file_value():
    runner = CliRunner()
    with runner.isolated_filesystem():
        with open("config.toml", "w") as f:
            f.write('[serial]\nparity = "sometimes"\n')
        with mock.patch("serial_console.device.serial.Serial") as ctor:
            result = runner.invoke(main, ["-P", "/dev/ttyUSB0"])
    assert result.exit_code == 1
    assert "Invalid parity" in result.output
    ctor.assert_not_called()


def test_clean_exit():
    runner = CliRunner()
    with runner.isolated_filesystem():
        with mock.patch("serial_console.device.serial.Serial") as ctor, \
                mock.patch("serial_console.cli.run_session", return_value=LoopOutcome.CLEAN_EXIT) as run:
            ctor.return_value.__enter__.return_value.fileno.return_value = 42
            result = runner.invoke(main, ["-P", "/dev/ttyUSB0", "-b", "9600", "-p", "odd", "-e"])
    assert result.exit_code == 0, result.output
    assert "Disconnected." in result.output
    assert ctor.call_args.kwargs["baudrate"] == 9600
    assert ctor.call_args.kwargs["parity"] == serial.PARITY_ODD
    device_fd, settings = run.call_args.args
    assert device_fd == 42
    assert settings.echo is True


def test_fatal_io_error_exits_non_zero():
    runner = CliRunner()
    failure = FatalIOError(OSError(errno.EIO, "Input/output error"))
    with runner.isolated_filesystem():
        with mock.patch("serial_console.device.serial.Serial"), \
                mock.patch("serial_console.cli.run_session", side_effect=failure):
            result = runner.invoke(main, ["-P", "/dev/ttyUSB0"])
    assert result.exit_code == 1
    assert "i/o error: EIO" in result.output


def test_menu_selection_from_stdin():
    runner = CliRunner()
    infos = [mock.Mock(device="/dev/ttyUSB0", device_path=None)]
    infos[0].name = "ttyUSB0"
    with runner.isolated_filesystem():
        with mock.patch("serial_console.discovery.list_ports.comports", return_value=infos), \
                mock.patch("serial_console.device.serial.Serial") as ctor, \
                mock.patch("serial_console.cli.run_session", return_value=LoopOutcome.CLEAN_EXIT):
            result = runner.invoke(main, [], input="1\n")
    assert result.exit_code == 0, result.output
    assert "#1  ttyUSB0 (path=/dev/ttyUSB0)" in result.output
    assert ctor.call_args.kwargs["port"] == "/dev/ttyUSB0"


def test_negative_poll_interval_in_config():
    runner = CliRunner()
    with runner.isolated_filesystem():
        with open("config.toml", "w") as f:
            f.write("[terminal]\npoll_interval = -1\n")
        with mock.patch("serial_console.device.serial.Serial") as ctor:
            result = runner.invoke(main, ["-P", "/dev/ttyUSB0"])
    assert result.exit_code == 1
    assert "Error: Invalid poll_interval" in result.output
    ctor.assert_not_called()


class TestRunSession(unittest.TestCase):
    """run_session on a pseudo-terminal stdin with a socketpair as the device."""

    def setUp(self):
        self.master, self.slave = os.openpty()
        self.original = termios.tcgetattr(self.slave)
        self.original_flags = fcntl.fcntl(self.slave, fcntl.F_GETFL)
        self.device, self.remote = socket.socketpair()
        self.out_r, self.out_w = os.pipe()
        self.err_r, self.err_w = os.pipe()
        for fd in (self.out_r, self.err_r):
            fcntl.fcntl(fd, fcntl.F_SETFL, fcntl.fcntl(fd, fcntl.F_GETFL) | os.O_NONBLOCK)

        stdin = os.fdopen(self.slave, "rb", buffering=0, closefd=False)
        stdout = os.fdopen(self.out_w, "w", closefd=False)
        stderr = os.fdopen(self.err_w, "w", closefd=False)
        self.streams = mock.patch.multiple(sys, stdin=stdin, stdout=stdout, stderr=stderr)
        self.streams.start()
        self.files = [stdin, stdout, stderr]

    def tearDown(self):
        self.streams.stop()
        for f in self.files:
            f.close()
        self.device.close()
        self.remote.close()
        for fd in (self.master, self.slave, self.out_r, self.out_w, self.err_r, self.err_w):
            os.close(fd)

    def type_when_raw(self, *chunks: bytes) -> threading.Thread:
        """Type each chunk into the pty once the session has made it raw."""

        def typist():
            deadline = time.monotonic() + 5.0
            while termios.tcgetattr(self.slave)[LFLAG] != 0 and time.monotonic() < deadline:
                time.sleep(0.005)
            for chunk in chunks:
                os.write(self.master, chunk)
                time.sleep(0.2)

        thread = threading.Thread(target=typist, daemon=True)
        thread.start()
        return thread

    def assertTerminalRestored(self):
        self.assertEqual(termios.tcgetattr(self.slave), self.original)
        self.assertEqual(fcntl.fcntl(self.slave, fcntl.F_GETFL), self.original_flags)

    def read_pipe(self, fd: int) -> bytes:
        try:
            return os.read(fd, 65536)
        except BlockingIOError:
            return b""

    def test_clean_quit(self):
        self.remote.sendall(b"welcome\r\n")
        typist = self.type_when_raw(b"\x01", b"q")
        outcome = run_session(self.device.fileno(), Settings(command_timeout=2.0))
        typist.join(timeout=5.0)

        self.assertIs(outcome, LoopOutcome.CLEAN_EXIT)
        self.assertTerminalRestored()
        self.assertTrue(fcntl.fcntl(self.device.fileno(), fcntl.F_GETFL) & os.O_NONBLOCK)
        self.assertIn(b"Connected. Use C-a C-q to exit.", self.read_pipe(self.err_r))
        self.assertEqual(self.read_pipe(self.out_r), b"welcome\r\n")
        self.remote.setblocking(False)
        with self.assertRaises(BlockingIOError):
            self.remote.recv(16)

    def test_device_failure_restores_terminal(self):
        self.remote.close()
        typist = self.type_when_raw(b"hello")
        with self.assertRaises(FatalIOError) as ctx:
            run_session(self.device.fileno(), Settings())
        typist.join(timeout=5.0)

        self.assertEqual(ctx.exception.name, "EPIPE")
        self.assertTerminalRestored()
