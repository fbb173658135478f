"""Per-command timing, shown when the \\t option is on."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


def format_duration(seconds: float) -> str:
    """Render a duration the way humans read it: 812µs, 12.5ms, 1.02s."""
    if seconds < 1e-3:
        return f"{seconds * 1e6:.0f}µs"
    if seconds < 1.0:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


@dataclass
class Timing:
    """Timestamps around one command.

    Attributes:
        pre: When the command started
        executed: When the store answered
        printed: When output was fully written
    """

    pre: float = field(default_factory=time.perf_counter)
    executed: float | None = None
    printed: float | None = None

    def mark_executed(self) -> None:
        self.executed = time.perf_counter()

    def mark_printed(self) -> None:
        self.printed = time.perf_counter()

    def string_query(self) -> str:
        if self.executed is None:
            return "unknown"
        return format_duration(self.executed - self.pre)

    def string_print(self) -> str:
        if self.executed is None or self.printed is None:
            return "unknown"
        return format_duration(self.printed - self.executed)

    def __str__(self) -> str:
        return f"query+network: {self.string_query()}\ndisplaying   : {self.string_print()}"
