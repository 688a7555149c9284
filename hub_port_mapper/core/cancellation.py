"""Cooperative cancellation shared by prompts, scans and the monitor loop."""

from __future__ import annotations

import asyncio
import contextlib

from .errors import OperationCancelled


class CancellationToken:
    """
    One-shot cancellation flag that async code can wait on.

    The CLI cancels the token from its SIGINT handler; every suspension point
    (prompt, settle delay, poll sleep) checks it so the command stops promptly.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds; return False if cancelled meanwhile."""
        if self._event.is_set():
            return False
        if delay <= 0:
            return True
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        return not self._event.is_set()


__all__ = ["CancellationToken"]
