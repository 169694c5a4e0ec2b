"""procstream - launch child processes and stream their lines over channels.

Usage:
    from procstream import ProcessSpec, launch, open_line_channel
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config, get_config, load_config, reload_config
from .errors import LaunchError, ProcessExitError, ProcstreamError, RelayFault
from .runtime import (
    CancelContext,
    CollectedOutput,
    EchoDestination,
    LineDestination,
    ProcessHandle,
    ProcessSpec,
    ProcessStreamer,
    SinkDestination,
    collect,
    inherit_environment,
    launch,
    open_line_channel,
)

__all__ = [
    "CancelContext",
    "CollectedOutput",
    "Config",
    "EchoDestination",
    "LaunchError",
    "LineDestination",
    "ProcessExitError",
    "ProcessHandle",
    "ProcessSpec",
    "ProcessStreamer",
    "ProcstreamError",
    "RelayFault",
    "SinkDestination",
    "collect",
    "get_config",
    "inherit_environment",
    "launch",
    "load_config",
    "open_line_channel",
    "reload_config",
]
