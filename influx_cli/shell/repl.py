"""
Input loops for the influx shell.

Two ways of feeding the dispatcher:
    - run_stdin(): every line of a non-interactive stdin, then stop
    - run_interactive(): a readline prompt with history until exit or EOF

Blocking input() runs on a daemon thread per line, so the event loop (and the
batch committer's timer) keeps running while the user types, and a pending
read never holds up interpreter exit.

Invariants:
    - Ctrl-C and Ctrl-D both end the session; the caller drains afterwards
    - Blank lines are ignored and never added to history
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
from typing import TextIO

try:
    import readline
except ImportError:
    # readline is optional; without it there is no history or line editing
    readline = None  # type: ignore[assignment]

from ..config import expand_path
from .dispatcher import Dispatcher

logger = logging.getLogger(__name__)

PROMPT = "influx> "


class LineReader:
    """Reads prompt lines without blocking the event loop.

    read() returns None on EOF or after interrupt() was called.
    """

    def __init__(self) -> None:
        self._pending: asyncio.Future | None = None
        self.interrupted = False

    async def read(self, prompt: str = PROMPT) -> str | None:
        if self.interrupted:
            return None

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending = future

        def deliver(line: str | None) -> None:
            if not future.done():
                future.set_result(line)

        def worker() -> None:
            try:
                line: str | None = input(prompt)
            except (EOFError, KeyboardInterrupt):
                line = None
            except OSError as e:
                logger.error(f"Cannot read input: {e}")
                line = None
            loop.call_soon_threadsafe(deliver, line)

        threading.Thread(target=worker, name="influx-input", daemon=True).start()
        try:
            return await future
        finally:
            self._pending = None

    def interrupt(self) -> None:
        """End the session: wake a pending read and refuse further ones."""
        self.interrupted = True
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(None)


async def run_stdin(dispatcher: Dispatcher, stream: TextIO | None = None) -> None:
    """Run every line of a non-interactive input stream."""
    stream = stream or sys.stdin
    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            return
        cmd = line.strip()
        if cmd:
            await dispatcher.handle(cmd)


def _read_history(path: str) -> int:
    if readline is None:
        return 0
    hist = expand_path(path)
    try:
        readline.read_history_file(str(hist))
    except FileNotFoundError:
        pass
    except OSError as e:
        sys.stderr.write(f"Cannot read '{hist}': {e}\n")
        return 1
    return 0


def _write_history(path: str) -> int:
    if readline is None:
        return 0
    hist = expand_path(path)
    try:
        readline.write_history_file(str(hist))
    except OSError as e:
        sys.stderr.write(f"Cannot write to '{hist}': {e}\n")
        return 1
    return 0


def _add_history(line: str) -> None:
    if readline is not None:
        readline.add_history(line)


async def run_interactive(
    dispatcher: Dispatcher,
    history_path: str,
    reader: LineReader | None = None,
) -> int:
    """Run the interactive prompt until exit, Ctrl-D or Ctrl-C.

    Args:
        dispatcher: Command dispatcher
        history_path: readline history file
        reader: Line source (a fresh LineReader by default)

    Returns:
        Process exit code: 1 if history could not be read or written, else 0
    """
    code = _read_history(history_path)
    if code:
        return code

    reader = reader or LineReader()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, reader.interrupt)
        handles_sigint = True
    except (NotImplementedError, RuntimeError, ValueError):
        handles_sigint = False

    try:
        while True:
            line = await reader.read(PROMPT)
            if line is None:
                dispatcher.stdout.write("\n")
                break

            cmd = line.strip()
            if not cmd:
                continue
            _add_history(line)

            if cmd == "exit":
                break
            if cmd in ("help", "commands"):
                dispatcher.print_help()
                continue
            await dispatcher.handle(cmd)
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)

    return _write_history(history_path)
