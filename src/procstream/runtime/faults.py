"""Relay fault handlers.

A relay task that fails after launch() has returned cannot raise into the
caller. It wraps the error in a RelayFault, records it on the ProcessHandle
and passes it to the streamer's fault handler.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from ..config import Config, FaultMode, get_config
from ..errors import RelayFault

__all__ = [
    "FaultHandler",
    "log_fault",
    "abort_on_fault",
    "resolve_fault_handler",
]

logger = logging.getLogger(__name__)

FaultHandler = Callable[[RelayFault], None]

# EX_SOFTWARE from sysexits.h
ABORT_EXIT_CODE = 70


def log_fault(fault: RelayFault) -> None:
    """Log the fault and carry on."""
    logger.error(
        f"Relay fault on {fault.stream}: {fault.cause!r}",
        exc_info=(type(fault.cause), fault.cause, fault.cause.__traceback__),
    )


def abort_on_fault(fault: RelayFault) -> None:
    """Log the fault and terminate the interpreter without cleanup."""
    logger.critical(
        f"Unrecoverable relay fault on {fault.stream}: {fault.cause!r}",
        exc_info=(type(fault.cause), fault.cause, fault.cause.__traceback__),
    )
    logging.shutdown()
    os._exit(ABORT_EXIT_CODE)


def resolve_fault_handler(
    on_fault: FaultHandler | None = None,
    config: Config | None = None,
) -> FaultHandler:
    """Pick the explicit handler, else the one named by config.fault_mode."""
    if on_fault is not None:
        return on_fault
    config = config or get_config()
    if config.fault_mode is FaultMode.ABORT:
        return abort_on_fault
    return log_fault
