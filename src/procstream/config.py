"""procstream environment configuration.

Environment variables:
    PROCSTREAM_ENCODING: Encoding used to decode child output lines
        - default utf-8, undecodable bytes are replaced

    PROCSTREAM_MAX_LINE_BYTES: Longest line a relay accepts from the child
        - default 1048576 (1 MiB)
        - clamped to 1 KiB .. 64 MiB
        - a longer line is reported as a relay fault

    PROCSTREAM_TERM_TIMEOUT: Seconds between SIGTERM and SIGKILL on cancellation
        - default 2.0, clamped to 0.1 .. 60

    PROCSTREAM_FAULT_MODE: What to do when a relay task fails
        - log = log the fault and keep the host process running (default)
        - abort = log the fault and exit the interpreter immediately

    PROCSTREAM_LOG_DEBUG: Debug logging
        - true/1/yes = DEBUG logs to a file in the temp directory
        - false/0/no = INFO logs to stderr (default)
"""

from __future__ import annotations

import codecs
import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = [
    "Config",
    "FaultMode",
    "load_config",
    "get_config",
    "reload_config",
    "configure_logging",
]

DEFAULT_ENCODING = "utf-8"
DEFAULT_MAX_LINE_BYTES = 1024 * 1024
MIN_LINE_BYTES = 1024
MAX_LINE_BYTES = 64 * 1024 * 1024
DEFAULT_TERM_TIMEOUT = 2.0

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class FaultMode(Enum):
    """Relay fault handling mode.

    - LOG: log the fault, the launch keeps its remaining relays
    - ABORT: log the fault and terminate the whole interpreter
    """

    LOG = "log"
    ABORT = "abort"

    @classmethod
    def from_string(cls, value: str) -> "FaultMode":
        """Parse a mode string, invalid values fall back to LOG."""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.LOG


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_encoding(value: str | None) -> str:
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return DEFAULT_ENCODING


def _parse_max_line_bytes(value: str | None) -> int:
    if not value:
        return DEFAULT_MAX_LINE_BYTES
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_MAX_LINE_BYTES
    return max(MIN_LINE_BYTES, min(size, MAX_LINE_BYTES))


def _parse_term_timeout(value: str | None) -> float:
    if not value:
        return DEFAULT_TERM_TIMEOUT
    try:
        timeout = float(value)
        return max(0.1, min(timeout, 60.0))
    except ValueError:
        return DEFAULT_TERM_TIMEOUT


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "procstream"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"procstream_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """procstream configuration.

    Attributes:
        encoding: Codec for decoding child output
        max_line_bytes: Line length limit for output relays
        term_timeout: Grace period after SIGTERM before SIGKILL
        fault_mode: Default relay fault handling
        log_debug: Debug logging to file
        log_file: Log file path (set when log_debug=True)
    """

    encoding: str = DEFAULT_ENCODING
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    fault_mode: FaultMode = FaultMode.LOG
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(encoding={self.encoding}, "
            f"max_line_bytes={self.max_line_bytes}, "
            f"term_timeout={self.term_timeout}, "
            f"fault_mode={self.fault_mode.value}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """Load configuration from PROCSTREAM_* environment variables."""
    log_debug = _parse_bool(os.environ.get("PROCSTREAM_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    fault_mode = os.environ.get("PROCSTREAM_FAULT_MODE")

    return Config(
        encoding=_parse_encoding(os.environ.get("PROCSTREAM_ENCODING")),
        max_line_bytes=_parse_max_line_bytes(os.environ.get("PROCSTREAM_MAX_LINE_BYTES")),
        term_timeout=_parse_term_timeout(os.environ.get("PROCSTREAM_TERM_TIMEOUT")),
        fault_mode=FaultMode.from_string(fault_mode) if fault_mode else FaultMode.LOG,
        log_debug=log_debug,
        log_file=log_file,
    )


# Lazily loaded global instance
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload the global configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config


def configure_logging(config: Config | None = None) -> logging.Handler:
    """Attach a handler to the procstream logger.

    DEBUG to config.log_file when log_debug is on, otherwise INFO to stderr.
    Third-party loggers are left alone.

    Returns:
        The installed handler
    """
    config = config or get_config()

    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger = logging.getLogger("procstream")
    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)
    return handler
