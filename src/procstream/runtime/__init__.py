"""Runtime module for launching processes and streaming their lines.

This module provides process execution with stdin/stdout/stderr relayed
over line channels, cancellation, and relay fault reporting.
"""

from __future__ import annotations

from .cancel import CancelContext
from .channels import LineSource, inherit_environment, open_line_channel
from .destinations import EchoDestination, LineDestination, SinkDestination
from .faults import FaultHandler, abort_on_fault, log_fault
from .process_streamer import (
    CollectedOutput,
    ProcessHandle,
    ProcessSpec,
    ProcessStreamer,
    collect,
    launch,
)

__all__ = [
    "CancelContext",
    "CollectedOutput",
    "EchoDestination",
    "FaultHandler",
    "LineDestination",
    "LineSource",
    "ProcessHandle",
    "ProcessSpec",
    "ProcessStreamer",
    "SinkDestination",
    "abort_on_fault",
    "collect",
    "inherit_environment",
    "launch",
    "log_fault",
    "open_line_channel",
]
