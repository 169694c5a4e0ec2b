"""Line channels and environment helpers.

Lines travel between the caller and the relay tasks over anyio memory object
streams. The send side of a stdin channel is closed by the caller when it has
no more input; the send side of an output channel is closed by the streamer at
end-of-file.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterable, Mapping

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

__all__ = [
    "LineSource",
    "open_line_channel",
    "inherit_environment",
    "parse_environment",
]

# Anything the stdin relay can iterate; receive streams qualify
LineSource = AsyncIterable[str]


def open_line_channel(
    max_buffer_size: float = 0,
) -> tuple[MemoryObjectSendStream[str], MemoryObjectReceiveStream[str]]:
    """Create a (send, receive) pair of line streams.

    With the default buffer size of 0 every send() waits for a matching
    receive(), so an unread output sink stalls its relay.

    Args:
        max_buffer_size: Lines buffered before send() blocks

    Returns:
        Tuple of (send_stream, receive_stream)
    """
    return anyio.create_memory_object_stream[str](max_buffer_size)


def inherit_environment(environ: Mapping[str, str] | None = None) -> list[str]:
    """Return the parent environment as KEY=VALUE strings.

    A ProcessSpec with an empty env starts the child with no environment at
    all; pass this to env to inherit the caller's.
    """
    environ = os.environ if environ is None else environ
    return [f"{key}={value}" for key, value in environ.items()]


def parse_environment(entries: list[str] | tuple[str, ...]) -> dict[str, str]:
    """Turn KEY=VALUE strings into a dict. Later duplicates win.

    Raises:
        ValueError: If an entry has no '=' or an empty key
    """
    env: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise ValueError(f"malformed environment entry {entry!r}, want KEY=VALUE")
        env[key] = value
    return env
