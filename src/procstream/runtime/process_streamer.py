"""Process launcher with line streaming over channels.

procstream runtime module v0.1.0

This module provides:
- Launching a child process from a ProcessSpec (name, args, env)
- Stdin relay: lines from a caller source are written to the child
- Stdout/stderr relays: lines from the child go to a sink or are echoed
- Cancellation through a CancelContext (SIGTERM -> timeout -> SIGKILL)

Key design points:
- launch() returns as soon as the process is running; it never waits for it
- Each relay task owns its pipe; a sink is closed once, at end-of-file
- Relay failures after launch are reported as RelayFault to a fault handler
- The child environment is exactly spec.env (empty means empty)
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ..config import Config, get_config
from ..errors import LaunchError, ProcessExitError, RelayFault
from .cancel import CancelContext
from .channels import LineSource, open_line_channel, parse_environment
from .destinations import LineDestination, SinkDestination, as_destination
from .faults import FaultHandler, resolve_fault_handler

__all__ = [
    "ProcessSpec",
    "ProcessHandle",
    "ProcessStreamer",
    "CollectedOutput",
    "launch",
    "collect",
]

logger = logging.getLogger(__name__)

DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a child process.

    Attributes:
        name: Executable, looked up on the parent's PATH unless it has a path separator
        args: Arguments passed after the executable
        env: KEY=VALUE strings; empty means the child gets no environment
        stdin: Optional line source; each line is written verbatim
        stdout: Destination for stdout lines (send stream, destination, or None to echo)
        stderr: Destination for stderr lines (send stream, destination, or None to echo)
        cwd: Working directory (None = parent's)
    """

    name: str
    args: Sequence[str] = ()
    env: Sequence[str] = ()
    stdin: LineSource | None = None
    stdout: LineDestination | MemoryObjectSendStream[str] | None = None
    stderr: LineDestination | MemoryObjectSendStream[str] | None = None
    cwd: str | os.PathLike[str] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ProcessSpec.name must not be empty")
        for attr in ("args", "env"):
            value = getattr(self, attr)
            if isinstance(value, str):
                raise TypeError(f"ProcessSpec.{attr} must be a sequence of strings, not a string")
            object.__setattr__(self, attr, tuple(value))
        object.__setattr__(self, "stdout", as_destination(self.stdout, "stdout"))
        object.__setattr__(self, "stderr", as_destination(self.stderr, "stderr"))


class ProcessHandle:
    """A running child process and its relay tasks.

    The caller awaits wait() to get the exit status. Output relays are
    finished, and any sinks closed, by the time wait() returns.
    """

    def __init__(
        self,
        spec: ProcessSpec,
        process: asyncio.subprocess.Process,
        on_fault: FaultHandler,
    ) -> None:
        self.spec = spec
        self.process = process
        self.faults: list[RelayFault] = []
        self._on_fault = on_fault
        self._stdin_task: asyncio.Task[None] | None = None
        self._output_tasks: list[asyncio.Task[None]] = []
        self._watch_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        """Exit status, None while the process is running."""
        return self.process.returncode

    async def wait(self, *, check: bool = True) -> int:
        """Wait for the process to exit and its output to be relayed.

        Args:
            check: Raise ProcessExitError on a non-zero exit status

        Returns:
            The exit status (negative if killed by a signal)

        Raises:
            ProcessExitError: If check is set and the process failed
        """
        returncode = await self.process.wait()
        await self.drained()
        if self._watch_task is not None:
            await self._watch_task

        logger.debug(
            f"Subprocess completed pid={self.pid} "
            f"name={self.spec.name} returncode={returncode}"
        )

        if check and returncode != 0:
            raise ProcessExitError(self.spec.name, returncode)
        return returncode

    async def drained(self) -> None:
        """Wait until both output relays have closed their destinations."""
        if self._output_tasks:
            await asyncio.gather(*self._output_tasks)

    def terminate(self) -> None:
        try:
            self.process.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        try:
            self.process.kill()
        except ProcessLookupError:
            pass

    def report_fault(self, stream: str, exc: BaseException) -> RelayFault:
        """Record a relay failure and hand it to the fault handler."""
        fault = RelayFault(stream, exc)
        fault.__cause__ = exc
        self.faults.append(fault)
        self._on_fault(fault)
        return fault

    def __repr__(self) -> str:
        return (
            f"ProcessHandle(name={self.spec.name!r}, pid={self.pid}, "
            f"returncode={self.returncode}, faults={len(self.faults)})"
        )


@dataclass
class ProcessStreamer:
    """Launches processes and wires their pipes to line channels.

    Example:
        stdout_send, stdout_recv = open_line_channel()
        streamer = ProcessStreamer()
        handle = await streamer.launch(
            ProcessSpec(name="echo", args=["hello"], stdout=stdout_send)
        )
        async with stdout_recv:
            async for line in stdout_recv:
                print(line)
        await handle.wait()
    """

    config: Config = field(default_factory=get_config)
    on_fault: FaultHandler | None = None
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    async def launch(
        self,
        spec: ProcessSpec,
        ctx: CancelContext | None = None,
    ) -> ProcessHandle:
        """Start the process described by spec and its relay tasks.

        Args:
            spec: Process specification
            ctx: Cancellation context; None never cancels

        Returns:
            Handle of the running process

        Raises:
            LaunchError: If the process could not be started
        """
        if ctx is not None and ctx.cancelled:
            raise LaunchError(f"context already cancelled ({ctx.reason})", spec.name)

        executable = self._resolve_executable(spec.name)

        try:
            env = parse_environment(spec.env)
        except ValueError as e:
            raise LaunchError(str(e), spec.name) from e

        for stream_name, destination in (("stdout", spec.stdout), ("stderr", spec.stderr)):
            if isinstance(destination, SinkDestination) and destination.closed:
                raise LaunchError(f"{stream_name} sink is already closed", spec.name)

        try:
            # stdin=None would share the parent's stdin with the child
            process = await asyncio.create_subprocess_exec(
                executable,
                *spec.args,
                stdin=asyncio.subprocess.PIPE if spec.stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=spec.cwd,
                limit=self.config.max_line_bytes,
            )
        except OSError as e:
            raise LaunchError(e.strerror or str(e), spec.name) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"name={spec.name} args={list(spec.args)}"
        )

        handle = ProcessHandle(spec, process, resolve_fault_handler(self.on_fault, self.config))

        if spec.stdin is not None and process.stdin is not None:
            handle._stdin_task = asyncio.create_task(
                self._relay_stdin(handle, spec.stdin, process.stdin),
                name=f"procstream-stdin-{process.pid}",
            )

        for stream_name, reader, destination in (
            ("stdout", process.stdout, spec.stdout),
            ("stderr", process.stderr, spec.stderr),
        ):
            if reader:
                handle._output_tasks.append(asyncio.create_task(
                    self._relay_output(handle, stream_name, reader, destination),
                    name=f"procstream-{stream_name}-{process.pid}",
                ))

        if ctx is not None:
            handle._watch_task = asyncio.create_task(
                self._watch_cancel(handle, ctx),
                name=f"procstream-cancel-{process.pid}",
            )

        return handle

    def _resolve_executable(self, name: str) -> str:
        """Find name on the parent's PATH, the way a shell would."""
        if os.sep in name or (os.altsep and os.altsep in name):
            return name
        path = shutil.which(name)
        if path is None:
            raise LaunchError("executable file not found in $PATH", name)
        return path

    def _decode(self, raw: bytes) -> str:
        if raw.endswith(b"\n"):
            raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode(self.config.encoding, errors="surrogateescape")

    async def _relay_stdin(
        self,
        handle: ProcessHandle,
        source: LineSource,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Write each source line to the child, then close its stdin once."""
        encoding = self.config.encoding
        try:
            async for line in source:
                writer.write(line.encode(encoding))
                await writer.drain()
        except Exception as e:
            handle.report_fault("stdin", e)
            # The child must still see end-of-input
            writer.close()
            return
        finally:
            if isinstance(source, MemoryObjectReceiveStream):
                source.close()

        try:
            writer.close()
            await writer.wait_closed()
        except Exception as e:
            handle.report_fault("stdin", e)
            return

        logger.debug(f"Closed stdin pid={handle.pid}")

    async def _relay_output(
        self,
        handle: ProcessHandle,
        stream_name: str,
        reader: asyncio.StreamReader,
        destination: LineDestination,
    ) -> None:
        """Pass each line of reader to destination and close it at end-of-file."""
        count = 0
        destination.bind_encoding(self.config.encoding)
        try:
            async for raw in reader:
                await destination.deliver(self._decode(raw))
                count += 1
        except Exception as e:
            handle.report_fault(stream_name, e)
            # Keep the pipe flowing so the child is not blocked on a full buffer
            await self._discard(reader)
        finally:
            try:
                await destination.close()
            except Exception as e:
                handle.report_fault(stream_name, e)

        logger.debug(f"Relayed {count} {stream_name} lines pid={handle.pid}")

    async def _discard(self, reader: asyncio.StreamReader) -> None:
        while await reader.read(65536):
            pass

    async def _watch_cancel(self, handle: ProcessHandle, ctx: CancelContext) -> None:
        """Terminate the process if ctx is cancelled before it exits."""
        cancel_wait = asyncio.create_task(ctx.wait())
        exit_wait = asyncio.create_task(handle.process.wait())
        try:
            done, _ = await asyncio.wait(
                {cancel_wait, exit_wait},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_wait.cancel()
            exit_wait.cancel()

        if exit_wait in done or handle.returncode is not None:
            return

        logger.debug(f"Context cancelled ({ctx.reason}), terminating pid={handle.pid}")
        await self._terminate_process(handle.process)

    async def _terminate_process(self, process: asyncio.subprocess.Process) -> None:
        """Terminate gracefully, then forcefully if needed.

        1. Send SIGTERM (TerminateProcess on Windows)
        2. Wait up to config.term_timeout for exit
        3. If still running, send SIGKILL
        4. Wait up to kill_timeout for forced exit
        """
        pid = process.pid
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self.config.term_timeout)
                logger.debug(f"Subprocess terminated pid={pid} returncode={process.returncode}")
                return
            except asyncio.TimeoutError:
                pass

            logger.warning(f"Force killing subprocess pid={pid}, still running after SIGTERM")
            process.kill()

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")


async def launch(
    spec: ProcessSpec,
    ctx: CancelContext | None = None,
    *,
    on_fault: FaultHandler | None = None,
) -> ProcessHandle:
    """Launch spec with a default ProcessStreamer."""
    return await ProcessStreamer(on_fault=on_fault).launch(spec, ctx)


@dataclass(frozen=True)
class CollectedOutput:
    """Everything a finished process wrote."""

    returncode: int
    stdout: list[str]
    stderr: list[str]


async def _iter_lines(lines: Iterable[str]):
    for line in lines:
        yield line


async def _drain(receive: MemoryObjectReceiveStream[str], into: list[str]) -> None:
    async with receive:
        async for line in receive:
            into.append(line)


async def collect(
    name: str,
    args: Sequence[str] = (),
    *,
    env: Sequence[str] = (),
    stdin_lines: Iterable[str] | None = None,
    cwd: str | os.PathLike[str] | None = None,
    ctx: CancelContext | None = None,
    check: bool = True,
) -> CollectedOutput:
    """Run a process to completion and gather its output lines.

    This is a convenience function for cases where streaming is not needed.

    Raises:
        LaunchError: If the process could not be started
        ProcessExitError: If check is set and the process failed
    """
    stdout_send, stdout_recv = open_line_channel()
    stderr_send, stderr_recv = open_line_channel()

    spec = ProcessSpec(
        name=name,
        args=args,
        env=env,
        stdin=_iter_lines(stdin_lines) if stdin_lines is not None else None,
        stdout=stdout_send,
        stderr=stderr_send,
        cwd=cwd,
    )

    try:
        handle = await launch(spec, ctx)
    except LaunchError:
        for stream in (stdout_send, stdout_recv, stderr_send, stderr_recv):
            stream.close()
        raise

    stdout: list[str] = []
    stderr: list[str] = []
    async with anyio.create_task_group() as tg:
        tg.start_soon(_drain, stdout_recv, stdout)
        tg.start_soon(_drain, stderr_recv, stderr)

    returncode = await handle.wait(check=check)
    return CollectedOutput(returncode=returncode, stdout=stdout, stderr=stderr)
