"""
Configuration loading

Settings come from three layers, later layers winning:
defaults -> TOML file -> command-line overrides.

Example config.toml:

    [server]
    host = "127.0.0.1"
    port = 3000

    [client]
    timeout_sec = 5.0
    chunk_size = 1024
    output_file = "${HOME}/feeds/output.json"
"""

import os
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import toml

logger = logging.getLogger(__name__)

DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 3000
DEFAULT_TIMEOUT_SEC = 5.0
DEFAULT_CHUNK_SIZE = 1024
DEFAULT_OUTPUT_FILE = 'output.json'


class ConfigError(Exception):
    """Configuration file missing, unparsable or invalid"""


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class ClientConfig:
    """Settings for one recovery run"""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout_sec: float = DEFAULT_TIMEOUT_SEC
    chunk_size: int = DEFAULT_CHUNK_SIZE
    output_file: str = DEFAULT_OUTPUT_FILE

    def __post_init__(self):
        if not isinstance(self.host, str) or not self.host:
            raise ConfigError(f"host must be a non-empty string, got {self.host!r}")
        if not _is_int(self.port) or not 1 <= self.port <= 65535:
            raise ConfigError(f"port must be an integer in 1..65535, got {self.port!r}")
        if not _is_number(self.timeout_sec) or self.timeout_sec <= 0:
            raise ConfigError(f"timeout_sec must be a positive number, got {self.timeout_sec!r}")
        if not _is_int(self.chunk_size) or self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be a positive integer, got {self.chunk_size!r}")
        if not isinstance(self.output_file, (str, os.PathLike)):
            raise ConfigError(f"output_file must be a path string, got {self.output_file!r}")
        self.timeout_sec = float(self.timeout_sec)
        self.output_file = os.path.expanduser(os.path.expandvars(os.fspath(self.output_file)))

    @property
    def output_path(self) -> Path:
        return Path(self.output_file)

    def with_overrides(self, **overrides: Any) -> 'ClientConfig':
        """Copy with non-None overrides applied"""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ClientConfig(**values)


def config_from_dict(config: Dict) -> ClientConfig:
    """
    Build a ClientConfig from parsed TOML.

    Args:
        config: Parsed TOML with optional [server] and [client] sections

    Returns:
        ClientConfig with defaults for anything not set
    """
    server = config.get('server', {})
    client = config.get('client', {})
    for name, section in (('server', server), ('client', client)):
        if not isinstance(section, dict):
            raise ConfigError(f"[{name}] must be a table, got {type(section).__name__}")

    values = {
        'host': server.get('host'),
        'port': server.get('port'),
        'timeout_sec': client.get('timeout_sec'),
        'chunk_size': client.get('chunk_size'),
        'output_file': client.get('output_file'),
    }
    try:
        return ClientConfig().with_overrides(**values)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e


def load_config(config_file: Optional[Union[str, Path]] = None) -> ClientConfig:
    """
    Load configuration from a TOML file, or defaults when no file is given.

    Raises:
        ConfigError: file not found, not valid TOML, or invalid values
    """
    if config_file is None:
        logger.debug("No configuration file given, using defaults")
        return ClientConfig()

    config_file = Path(os.path.expanduser(os.path.expandvars(str(config_file))))
    try:
        with open(config_file, 'r') as f:
            config = toml.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_file}") from e
    except (OSError, toml.TomlDecodeError) as e:
        raise ConfigError(f"Error loading configuration {config_file}: {e}") from e

    logger.info(f"Loaded configuration from {config_file}")
    return config_from_dict(config)
