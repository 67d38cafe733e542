from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, replace
from typing import Any

from .errors import ConfigurationError

_logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.toml"


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load configuration from TOML file."""
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        _logger.debug("Config file %s not found. Using default values.", config_path)
        return {}
    except (tomllib.TOMLDecodeError, OSError) as e:
        _logger.warning("Failed to parse config %s: %s. Using default values.", config_path, e)
        return {}


@dataclass(frozen=True)
class Settings:
    """
    Resolved line and terminal settings.
    Fields:
        baudrate: line speed
        data_bits: word size (5..8)
        stop_bits: 'one', 'one_point_five' or 'two'
        parity: 'none', 'even', 'odd', 'mark' or 'space'
        control_flow: 'none', 'software' or 'hardware'
        echo: echo typed input locally
        command_timeout: seconds the escape sub-mode waits for a command
        poll_interval: longest wait for readiness between polls (0 = spin)
    """
    baudrate: int = 115200
    data_bits: int = 8
    stop_bits: str = "one"
    parity: str = "none"
    control_flow: str = "none"
    echo: bool = False
    command_timeout: float = 0.5
    poll_interval: float = 0.01

    def __post_init__(self) -> None:
        # select() rejects negative waits
        for name in ("command_timeout", "poll_interval"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"Invalid {name} {getattr(self, name)}: must not be negative")

    @classmethod
    def from_config(cls, config: dict) -> "Settings":
        """Extract settings from a config dict, keeping defaults for missing keys."""
        serial_cfg = config.get("serial", {})
        term_cfg = config.get("terminal", {})
        defaults = cls()

        try:
            return cls(
                baudrate=int(serial_cfg.get("baudrate", defaults.baudrate)),
                data_bits=int(serial_cfg.get("data_bits", defaults.data_bits)),
                stop_bits=str(serial_cfg.get("stop_bits", defaults.stop_bits)),
                parity=str(serial_cfg.get("parity", defaults.parity)),
                control_flow=str(serial_cfg.get("control_flow", defaults.control_flow)),
                echo=bool(term_cfg.get("echo", defaults.echo)),
                command_timeout=float(term_cfg.get("command_timeout", defaults.command_timeout)),
                poll_interval=float(term_cfg.get("poll_interval", defaults.poll_interval)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

    def override(self, **values: Any) -> "Settings":
        # None means "not given on the command line"
        return replace(self, **{k: v for k, v in values.items() if v is not None})
