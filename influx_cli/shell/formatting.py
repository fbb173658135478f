"""
Result formatting for the shell.

Select output is a fixed-width table per series: a "## <name>" line, a header
row and one row per point. time, sequence_number and value get numeric specs;
every other column is printed as-is.

Invariants:
    - Formatting never raises on unexpected value types; it falls back to str()
    - Records-only mode prints rows without the name line and header
"""

from __future__ import annotations

import pprint
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, TextIO

from ..series import Series


@dataclass(frozen=True)
class ColumnSpec:
    """Header and row format for one column.

    Attributes:
        header_width: Right-aligned header width
        row_width: Right-aligned row width
        numeric: Render numbers with six decimals
        prefix: Literal padding before each row value
    """

    header_width: int = 20
    row_width: int = 20
    numeric: bool = False
    prefix: str = ""

    def header(self, name: str) -> str:
        return f"{name:>{self.header_width}}"

    def row(self, value: Any) -> str:
        if self.numeric and isinstance(value, (int, float)) and not isinstance(value, bool):
            return f"{self.prefix}{value:>{self.row_width}f}"
        return f"{self.prefix}{_plain(value):>{self.row_width}}"


DEFAULT_SPEC = ColumnSpec()
DATETIME_SPEC = ColumnSpec(header_width=33, row_width=33)

SELECT_SPECS: Dict[str, ColumnSpec] = {
    "time": ColumnSpec(numeric=True),
    "sequence_number": ColumnSpec(header_width=16, row_width=10, numeric=True, prefix="      "),
    "value": ColumnSpec(numeric=True),
}


def _plain(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_timestamp_ms(value: Any) -> str:
    """Render a millisecond epoch timestamp as a local datetime string."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return _plain(value)
    moment = datetime.fromtimestamp(value / 1000.0).astimezone()
    return moment.strftime("%Y-%m-%d %H:%M:%S.%f %z %Z")


def write_select(
    series_list: Iterable[Series],
    out: TextIO,
    records_only: bool = False,
    date_time: bool = False,
) -> None:
    """Write query results as fixed-width tables.

    Args:
        series_list: Series returned by the store
        out: Destination stream
        records_only: Omit the name line and header row
        date_time: Render the first column as a datetime
    """
    specs = dict(SELECT_SPECS)
    if date_time:
        specs["time"] = DATETIME_SPEC

    for series in series_list:
        if not records_only:
            out.write(f"## {series.name}\n")

        row_specs = [specs.get(col, DEFAULT_SPEC) for col in series.columns]
        if not records_only:
            out.write("".join(spec.header(col) for spec, col in zip(row_specs, series.columns)))
            out.write("\n")

        for point in series.points:
            cells = []
            for i, (spec, value) in enumerate(zip(row_specs, point)):
                if i == 0 and date_time:
                    cells.append(spec.row(format_timestamp_ms(value)))
                else:
                    cells.append(spec.row(value))
            out.write("".join(cells))
            out.write("\n")


def write_series_names(series_list: Iterable[Series], out: TextIO) -> None:
    """Write the name column of a "list series" result, one per line."""
    for series in series_list:
        for point in series.points:
            if len(point) > 1:
                out.write(f"{_plain(point[1])}\n")


def write_records(records: List[Dict[str, Any]], out: TextIO, id_key: str | None = None) -> None:
    """Write a list of records as "## <id>" blocks of key/value lines.

    Args:
        records: Records to print
        out: Destination stream
        id_key: Key used for the block title; the record index when None
    """
    for index, record in enumerate(records):
        title = record.get(id_key) if id_key else index
        out.write(f"## {'id ' if id_key else ''}{_plain(title)}\n")
        for key, value in record.items():
            if key == id_key:
                continue
            out.write(f"{key:>25} {_plain(value)}\n")


_SHARD_COLUMNS = (
    ("Database", "database"),
    ("Name", "name"),
    ("Regex", "regex"),
    ("Retention", "retentionPolicy"),
    ("Duration", "shardDuration"),
)


def write_shard_spaces(shard_spaces: List[Dict[str, Any]], out: TextIO) -> None:
    """Write shard spaces as a table sized to the widest cell per column."""
    widths = [len(title) for title, _ in _SHARD_COLUMNS]
    for space in shard_spaces:
        for i, (_, key) in enumerate(_SHARD_COLUMNS):
            widths[i] = max(widths[i], len(_plain(space.get(key, ""))))

    def line(cells: List[str], rf: str, split: str) -> str:
        padded = " ".join(f"{cell:>{w}}" for cell, w in zip(cells, widths))
        return f"{padded} {rf:>2} {split:>5}\n"

    out.write(line([title for title, _ in _SHARD_COLUMNS], "RF", "Split"))
    for space in shard_spaces:
        out.write(
            line(
                [_plain(space.get(key, "")) for _, key in _SHARD_COLUMNS],
                _plain(space.get("replicationFactor", "")),
                _plain(space.get("split", "")),
            )
        )


def write_raw(series_list: List[Series], out: TextIO) -> None:
    """Dump query results verbatim for the raw command."""
    out.write(pprint.pformat([s.to_dict() for s in series_list], width=100))
    out.write("\n")
