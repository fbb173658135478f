"""
Series data model for influx-cli.

A Series is the unit the store reads and writes: a name, an ordered list of
column names and one or more points sharing that column layout.

Wire format (store HTTP API):
    {"name": "cpu", "columns": ["time", "value"], "points": [[1406231160000, 0.5]]}

Invariants:
    - Every point has exactly len(columns) values
    - Point values are typed once, at ingestion, by parse_value()
    - parse_value() tries integer, then float, then falls back to text

How to change safely:
    - The integer-before-float precedence is visible to users (1 vs 1.0)
    - Keep to_dict() output compatible with the store's write endpoint
"""

from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

PointValue = Union[int, float, str]

DEFAULT_COLUMNS = ("time", "sequence_number", "value")

_INT_RE = re.compile(r"^[+-]?[0-9]+$")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def parse_value(raw: str) -> PointValue:
    """Type a raw value by best-effort parsing.

    Integers are tried first (signed 64-bit), then floats, and anything else
    is kept verbatim as text. The store is schemaless, so nothing is validated.

    Args:
        raw: Raw value as typed by the user

    Returns:
        int, float or the original string

    Example:
        >>> parse_value("10"), parse_value("1.5"), parse_value("up")
        (10, 1.5, 'up')
    """
    text = raw.strip()
    if _INT_RE.match(text):
        value = int(text)
        if _INT64_MIN <= value <= _INT64_MAX:
            return value
    # float() also accepts digit separators, the store does not
    if text and "_" not in text:
        try:
            return float(text)
        except ValueError:
            pass
    return raw


def split_values(values: str) -> List[str]:
    """Split a comma separated value list, honouring double quotes.

    ``foo,bar,"avg(something,123)",quux`` yields four values.

    Raises:
        ValueError: If the list is not valid CSV
    """
    reader = csv.reader([values], skipinitialspace=True, strict=True)
    try:
        row = next(reader)
    except csv.Error as e:
        raise ValueError(str(e)) from e
    except StopIteration:
        return []
    return row


@dataclass
class Series:
    """A named series with a column layout and its points.

    Attributes:
        name: Series name
        columns: Ordered column names
        points: Rows of values, one value per column
    """

    name: str
    columns: List[str]
    points: List[List[Any]] = field(default_factory=list)

    @classmethod
    def single(cls, name: str, columns: List[str], values: List[PointValue]) -> Series:
        """Build a one-point series.

        Raises:
            ValueError: If the value count does not match the column count
        """
        if len(values) != len(columns):
            raise ValueError(
                f"Number of values ({len(values)}) must match number of columns "
                f"({len(columns)}): Columns are: {columns}"
            )
        return cls(name=name, columns=list(columns), points=[list(values)])

    @property
    def point_count(self) -> int:
        return len(self.points)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the store's JSON representation."""
        return {
            "name": self.name,
            "columns": list(self.columns),
            "points": [list(p) for p in self.points],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Series:
        """Create from the store's JSON representation."""
        return cls(
            name=data["name"],
            columns=list(data.get("columns", [])),
            points=[list(p) for p in data.get("points", [])],
        )

    def __str__(self) -> str:
        return f"Series(name={self.name}, points={self.point_count})"
