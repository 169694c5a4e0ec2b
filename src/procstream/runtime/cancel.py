"""Cancellation context for launched processes.

A CancelContext is handed to launch(). Cancelling it terminates the child
process; the relays then see end-of-file and finish as on a normal exit.
"""

from __future__ import annotations

import asyncio
import time

__all__ = ["CancelContext"]


class CancelContext:
    """Caller-owned cancellation signal with an optional deadline.

    Example:
        ctx = CancelContext.with_timeout(5.0)
        handle = await launch(spec, ctx)
        ...
        ctx.cancel()
    """

    def __init__(self, deadline: float | None = None) -> None:
        # deadline is a time.monotonic() timestamp
        self._deadline = deadline
        self._event = asyncio.Event()
        self._reason: str | None = None

    @classmethod
    def background(cls) -> "CancelContext":
        """A context that is never cancelled unless cancel() is called."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelContext":
        """A context that cancels itself after the given number of seconds."""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def reason(self) -> str | None:
        """Why the context was cancelled, None while active."""
        if self._reason is None and self._deadline_passed():
            self._reason = "deadline exceeded"
        return self._reason

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self._deadline_passed()

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the context. Later calls keep the first reason."""
        if self._reason is None:
            self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        """Block until the context is cancelled or its deadline passes."""
        if self._deadline is None:
            await self._event.wait()
            return

        remaining = self._deadline - time.monotonic()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(remaining, 0.0))
        except asyncio.TimeoutError:
            self.cancel("deadline exceeded")

    def _deadline_passed(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def __repr__(self) -> str:
        state = f"cancelled={self.reason!r}" if self.cancelled else "active"
        return f"CancelContext({state}, deadline={self._deadline})"
