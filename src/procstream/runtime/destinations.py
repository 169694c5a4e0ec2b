"""Where output relays put the lines they read.

Two variants, picked when the ProcessSpec is built:
- SinkDestination forwards each line to a caller-owned send stream and closes
  it at end-of-file
- EchoDestination copies each line to the parent's own stdout/stderr
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from typing import TextIO

import anyio.to_thread
from anyio.streams.memory import MemoryObjectSendStream

__all__ = [
    "LineDestination",
    "SinkDestination",
    "EchoDestination",
    "as_destination",
]


class LineDestination(ABC):
    """Receiver of one output stream's lines."""

    def bind_encoding(self, encoding: str) -> None:
        """Called by the relay with the codec its lines were decoded with."""

    @abstractmethod
    async def deliver(self, line: str) -> None:
        """Hand over one line, without its terminator.

        Bytes that did not decode arrive as surrogate escapes.
        """

    @abstractmethod
    async def close(self) -> None:
        """Signal end of stream. Called once by the relay."""


class SinkDestination(LineDestination):
    """Forward lines to a send stream the caller drains.

    deliver() blocks until the caller receives, so a slow consumer slows the
    child. The stream is closed exactly once, by close().
    """

    def __init__(self, sink: MemoryObjectSendStream[str]) -> None:
        self.sink = sink
        self._closed = False

    async def deliver(self, line: str) -> None:
        await self.sink.send(line)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.sink.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"SinkDestination(closed={self._closed})"


class EchoDestination(LineDestination):
    """Write lines to the parent's stdout or stderr.

    The target stream is looked up on sys at write time so that redirected
    or captured streams are honoured. When the stream exposes a binary
    buffer the child's bytes are written back unchanged, undecodable ones
    included; otherwise the decoded text is written.

    Writes run in a worker thread, so a slow reader of the parent's stream
    stalls only this relay.
    """

    def __init__(
        self,
        stream_name: str = "stdout",
        stream: TextIO | None = None,
        encoding: str = "utf-8",
    ) -> None:
        if stream is None and stream_name not in ("stdout", "stderr"):
            raise ValueError(f"unknown stream {stream_name!r}")
        self.stream_name = stream_name
        self.encoding = encoding
        self._stream = stream

    @classmethod
    def stdout(cls) -> "EchoDestination":
        return cls("stdout")

    @classmethod
    def stderr(cls) -> "EchoDestination":
        return cls("stderr")

    @property
    def stream(self) -> TextIO:
        if self._stream is not None:
            return self._stream
        return getattr(sys, self.stream_name)

    def bind_encoding(self, encoding: str) -> None:
        self.encoding = encoding

    async def deliver(self, line: str) -> None:
        await anyio.to_thread.run_sync(self._write, line)

    def _write(self, line: str) -> None:
        stream = self.stream
        buffer = getattr(stream, "buffer", None)
        if buffer is None:
            stream.write(line + "\n")
            stream.flush()
            return
        # Pending text must reach the buffer before our bytes do
        stream.flush()
        buffer.write(line.encode(self.encoding, "surrogateescape") + b"\n")
        buffer.flush()

    async def close(self) -> None:
        # The parent's streams outlive the child
        pass

    def __repr__(self) -> str:
        return f"EchoDestination({self.stream_name})"


def as_destination(
    value: LineDestination | MemoryObjectSendStream[str] | None,
    stream_name: str,
) -> LineDestination:
    """Normalize a ProcessSpec output field.

    Args:
        value: A destination, a raw send stream, or None for echo
        stream_name: "stdout" or "stderr", used for the echo variant

    Raises:
        TypeError: If value is none of the accepted types
    """
    if value is None:
        return EchoDestination(stream_name)
    if isinstance(value, LineDestination):
        return value
    if isinstance(value, MemoryObjectSendStream):
        return SinkDestination(value)
    raise TypeError(
        f"{stream_name} must be a LineDestination or MemoryObjectSendStream, "
        f"got {type(value).__name__}"
    )
