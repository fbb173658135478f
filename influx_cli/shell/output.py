"""
Output modifiers for shell commands.

Any command can send its output somewhere other than stdout:

    list series; | sort          pipe into an external command
    select * from cpu; > out.txt write into a file

Without a modifier a trailing ";" is simply dropped.

Invariants:
    - Only one modifier per command line
    - A pipe target is started before the command runs; if it cannot start,
      the command is not run
"""

from __future__ import annotations

import asyncio
import io
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, TextIO, Tuple

from ..errors import CommandError

logger = logging.getLogger(__name__)


class OutputMode(Enum):
    STDOUT = "stdout"
    PIPE = "pipe"
    FILE = "file"


@dataclass(frozen=True)
class CommandLine:
    """A command with its output modifier split off.

    Attributes:
        command: The command text without modifier or trailing ";"
        mode: Where output goes
        pipe_args: Program and arguments for PIPE mode
        path: Target file for FILE mode
    """

    command: str
    mode: OutputMode = OutputMode.STDOUT
    pipe_args: Tuple[str, ...] = ()
    path: str | None = None


def parse_command_line(line: str) -> CommandLine:
    """Split the output modifier off a command line.

    Raises:
        CommandError: If a pipe or redirect has no target
    """
    cmd = line.strip().replace("; |", ";|", 1).replace("; >", ";>", 1)

    if ";|" in cmd:
        command, target = cmd.split(";|", 1)
        args = tuple(target.split())
        if not args:
            raise CommandError("error: no command specified to pipe to", command=line)
        return CommandLine(command=command.strip(), mode=OutputMode.PIPE, pipe_args=args)

    if ";>" in cmd:
        command, target = cmd.split(";>", 1)
        path = target.strip()
        if not path:
            raise CommandError("error: no file specified to write to", command=line)
        return CommandLine(command=command.strip(), mode=OutputMode.FILE, path=path)

    return CommandLine(command=cmd.removesuffix(";").strip())


@asynccontextmanager
async def open_output(
    line: CommandLine,
    stdout: TextIO,
    stderr: TextIO,
) -> AsyncIterator[TextIO]:
    """Yield the stream a command should write to.

    For PIPE mode the output is collected and fed to the child process's stdin
    once the command finishes; the child inherits our stdout and stderr.

    Raises:
        CommandError: If the file cannot be opened or the pipe target cannot start
    """
    if line.mode is OutputMode.FILE:
        if line.path is None:
            raise CommandError("error: no file specified to write to", command=line.command)
        try:
            target = open(line.path, "w", encoding="utf-8")
        except OSError as e:
            raise CommandError(
                f"internal error: cannot open file {line.path} for writing: {e}",
                command=line.command,
            ) from e
        with target:
            yield target
        return

    if line.mode is OutputMode.PIPE:
        # the child writes straight to fd 1, so earlier output must be out first
        stdout.flush()
        try:
            proc = await asyncio.create_subprocess_exec(
                *line.pipe_args, stdin=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise CommandError(
                f"subcommand failed: {e}\naborting query", command=line.command
            ) from e

        buffer = io.StringIO()
        try:
            yield buffer
        finally:
            await proc.communicate(buffer.getvalue().encode("utf-8"))
            if proc.returncode:
                stderr.write(f"subcommand failed: exit status {proc.returncode}\n")
            logger.debug(
                "Piped command output",
                extra={"program": line.pipe_args[0], "returncode": proc.returncode},
            )
        return

    yield stdout
