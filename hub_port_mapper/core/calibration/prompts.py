"""
Operator interaction for interactive commands.

The calibration procedure talks to the operator only through a ``Prompter``,
so tests can script the answers. ``ConsolePrompter`` is the terminal
implementation: it reads stdin on a daemon thread and races the read against
the cancellation token, so Ctrl+C releases a pending prompt immediately.
"""

from __future__ import annotations

import asyncio
import sys
import threading
from typing import Optional, Protocol, TextIO

from ..cancellation import CancellationToken
from ..errors import OperationCancelled

# ANSI color codes
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
RED = "\x1b[31m"
CYAN = "\x1b[36m"
BOLD = "\x1b[1m"
RESET = "\x1b[0m"


class Prompter(Protocol):
    """Blocking request/response exchange with the operator."""

    async def ask(self, question: str) -> str:
        ...

    def line(self, message: str = "") -> None:
        ...

    def info(self, message: str) -> None:
        ...

    def success(self, message: str) -> None:
        ...

    def warn(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


def declined(answer: str) -> bool:
    """``(Y/n)`` questions default to yes; only an explicit "n" declines."""
    return answer.strip().lower() == "n"


class ConsolePrompter:
    """Terminal prompter with colored output."""

    def __init__(
        self,
        token: Optional[CancellationToken] = None,
        *,
        stream: Optional[TextIO] = None,
        color: Optional[bool] = None,
    ):
        self._token = token
        self._stream = stream or sys.stdout
        if color is None:
            color = hasattr(self._stream, "isatty") and self._stream.isatty()
        self._color = color

    def _paint(self, code: str, message: str) -> str:
        if not self._color:
            return message
        return f"{code}{message}{RESET}"

    def _write(self, text: str) -> None:
        print(text, file=self._stream, flush=True)

    def line(self, message: str = "") -> None:
        self._write(message)

    def info(self, message: str) -> None:
        self._write(self._paint(CYAN, message))

    def success(self, message: str) -> None:
        self._write(self._paint(GREEN, message))

    def warn(self, message: str) -> None:
        self._write(self._paint(YELLOW, message))

    def error(self, message: str) -> None:
        self._write(self._paint(RED, message))

    def paint(self, kind: str, message: str) -> str:
        codes = {"green": GREEN, "yellow": YELLOW, "red": RED, "cyan": CYAN, "bold": BOLD}
        if kind not in codes:
            return message
        return self._paint(codes[kind], message)

    async def ask(self, question: str) -> str:
        """Print ``question`` and wait (without timeout) for one line of input.

        Raises:
            OperationCancelled: the token was cancelled or stdin closed.
        """
        if self._token is not None:
            self._token.raise_if_cancelled()

        self._stream.write(question)
        self._stream.flush()

        loop = asyncio.get_running_loop()
        answer: asyncio.Future[Optional[str]] = loop.create_future()

        def _deliver(value: Optional[str]) -> None:
            if not answer.done():
                answer.set_result(value)

        def _read() -> None:
            try:
                value: Optional[str] = sys.stdin.readline()
            except (OSError, ValueError):
                value = None
            if value == "":
                value = None  # EOF
            try:
                loop.call_soon_threadsafe(_deliver, value)
            except RuntimeError:
                # Loop already closed after a cancelled prompt.
                pass

        # Daemon thread: an abandoned read must not keep the process alive.
        threading.Thread(target=_read, name="prompt-reader", daemon=True).start()

        if self._token is None:
            value = await answer
        else:
            cancel_wait = asyncio.ensure_future(self._token.wait())
            try:
                await asyncio.wait({answer, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                cancel_wait.cancel()
            if not answer.done():
                answer.cancel()
                self._write("")
                raise OperationCancelled(self._token.reason or "cancelled")
            value = answer.result()

        if value is None:
            raise OperationCancelled("input closed")
        return value.rstrip("\r\n")


__all__ = ["ConsolePrompter", "Prompter", "declined"]
