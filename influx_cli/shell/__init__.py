"""
Interactive shell for influx-cli.

This module handles:
- Matching command lines to store operations (dispatcher)
- Output modifiers: piping into a program or writing to a file
- Result formatting and per-command timing
- The readline prompt and the stdin script runner

Invariants:
    - A failing command prints an error and leaves the shell usable
    - Inserts in async mode go through the BatchCommitter only
"""

from .dispatcher import Dispatcher, parse_insert
from .output import CommandLine, OutputMode, open_output, parse_command_line
from .repl import LineReader, run_interactive, run_stdin
from .timing import Timing

__all__ = [
    "Dispatcher",
    "parse_insert",
    "CommandLine",
    "OutputMode",
    "open_output",
    "parse_command_line",
    "LineReader",
    "run_interactive",
    "run_stdin",
    "Timing",
]
