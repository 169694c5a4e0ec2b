"""procstream exception classes.

procstream v0.1.0
"""

from __future__ import annotations

__all__ = [
    "ProcstreamError",
    "LaunchError",
    "RelayFault",
    "ProcessExitError",
]


class ProcstreamError(Exception):
    """Base exception for procstream."""
    pass


class LaunchError(ProcstreamError):
    """The child process could not be started.

    Raised synchronously from launch(). No process is left running.

    Attributes:
        name: Executable name from the ProcessSpec
        message: Error message
    """

    def __init__(self, message: str, name: str = "") -> None:
        self.name = name
        self.message = message
        super().__init__(f"cannot launch {name!r}: {message}" if name else message)


class RelayFault(ProcstreamError):
    """A relay task failed after the process had started.

    Attributes:
        stream: "stdin", "stdout" or "stderr"
        cause: The underlying exception
    """

    def __init__(self, stream: str, cause: BaseException) -> None:
        self.stream = stream
        self.cause = cause
        super().__init__(f"{stream} relay failed: {cause!r}")


class ProcessExitError(ProcstreamError):
    """The child exited with a non-zero status or was killed by a signal.

    Attributes:
        name: Executable name
        returncode: Exit status (negative for signal termination)
    """

    def __init__(self, name: str, returncode: int) -> None:
        self.name = name
        self.returncode = returncode
        if returncode < 0:
            detail = f"killed by signal {-returncode}"
        else:
            detail = f"exit status {returncode}"
        super().__init__(f"{name}: {detail}")
