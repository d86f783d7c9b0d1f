"""Cooperative cancellation shared by every network-bound step of a run.

A single CancellationToken is created by the top-level caller and passed by
reference through the pipeline, the agents and the backends. Backends wrap
their network awaitable with ``guard`` so a cancel request interrupts the
call mid-flight; synchronous stages call ``raise_if_cancelled`` at their
boundaries.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from contextlib import suppress
from typing import TypeVar

from dnd_forge.core.exceptions import CancellationError


T = TypeVar("T")


class CancellationToken:
    """A one-shot cancellation signal.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel("user closed the dialog")
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Subsequent calls are no-ops."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self, stage: str | None = None) -> None:
        """Raise CancellationError if cancellation was requested.

        Raises:
            CancellationError: If the token is cancelled.
        """
        if self._event.is_set():
            raise CancellationError(self._reason or "Operation cancelled", stage=stage)

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T], *, stage: str | None = None) -> T:
        """Await ``awaitable`` unless the token fires first.

        The awaited work is cancelled when the token fires, so no result of
        an abandoned call is ever observed.

        Args:
            awaitable: The network-bound work.
            stage: Label included in the raised error.

        Returns:
            The awaitable's result.

        Raises:
            CancellationError: If the token fired before the work finished.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled(stage)
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            waiter.cancel()
            raise

        if work in done:
            waiter.cancel()
            return work.result()

        work.cancel()
        with suppress(asyncio.CancelledError):
            await work
        raise CancellationError(self._reason or "Operation cancelled", stage=stage)


async def guarded(
    awaitable: Awaitable[T],
    cancel: CancellationToken | None,
    *,
    stage: str | None = None,
) -> T:
    """Await ``awaitable`` under ``cancel`` when a token is supplied."""
    if cancel is None:
        return await awaitable
    return await cancel.guard(awaitable, stage=stage)


__all__ = ["CancellationToken", "guarded"]
