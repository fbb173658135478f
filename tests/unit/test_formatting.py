"""
Unit tests for result formatting and timing.

Tests cover:
- Fixed-width select tables and records-only mode
- Series name listing, records and shard spaces
- Duration rendering
"""

import io

from influx_cli.series import Series
from influx_cli.shell import formatting
from influx_cli.shell.timing import Timing, format_duration


class TestWriteSelect:
    """Tests for write_select()."""

    def _render(self, series_list, **kwargs):
        out = io.StringIO()
        formatting.write_select(series_list, out, **kwargs)
        return out.getvalue().splitlines()

    def test_table_layout(self):
        """Name line, header row, then fixed-width rows."""
        series = Series("cpu", ["time", "sequence_number", "value"], [[1000, 1, 0.5]])

        lines = self._render([series])

        assert lines[0] == "## cpu"
        assert lines[1] == f"{'time':>20}{'sequence_number':>16}{'value':>20}"
        assert lines[2] == f"{1000:>20f}      {1:>10f}{0.5:>20f}"

    def test_other_columns_printed_as_is(self):
        """Columns without a numeric spec are right-aligned text."""
        series = Series("cpu", ["host"], [["web1"], [None], [True]])

        lines = self._render([series])

        assert lines[2] == f"{'web1':>20}"
        assert lines[3] == f"{'<nil>':>20}"
        assert lines[4] == f"{'true':>20}"

    def test_records_only(self):
        """Records-only mode drops the name line and header."""
        series = Series("cpu", ["value"], [[1], [2]])

        lines = self._render([series], records_only=True)

        assert lines == [f"{1:>20f}", f"{2:>20f}"]

    def test_text_in_numeric_column(self):
        """Text in a numeric column doesn't break formatting."""
        series = Series("events", ["value"], [["up"]])

        lines = self._render([series])

        assert lines[2] == f"{'up':>20}"

    def test_datetime_column(self):
        """\\dt renders the first column as a wide datetime."""
        series = Series("cpu", ["time", "value"], [[0, 1]])

        lines = self._render([series], date_time=True)

        assert lines[1].startswith(f"{'time':>33}")
        assert "1970-01-01" in lines[2] or "1969-12-31" in lines[2]
        assert lines[2].endswith(f"{1:>20f}")

    def test_multiple_series(self):
        """Each series gets its own table."""
        lines = self._render([Series("a", ["value"], [[1]]), Series("b", ["value"], [[2]])])

        assert [line for line in lines if line.startswith("##")] == ["## a", "## b"]


class TestOtherWriters:
    """Tests for the list/record writers."""

    def test_series_names(self):
        """The name column of a list series result, one per line."""
        out = io.StringIO()
        result = [Series("list_series_result", ["time", "name"], [[0, "cpu"], [0, "mem"]])]

        formatting.write_series_names(result, out)

        assert out.getvalue() == "cpu\nmem\n"

    def test_records_by_index(self):
        """Without an id key blocks are numbered."""
        out = io.StringIO()

        formatting.write_records([{"name": "root"}], out)

        assert out.getvalue() == f"## 0\n{'name':>25} root\n"

    def test_records_by_id(self):
        """With an id key blocks are titled by id and the key is not repeated."""
        out = io.StringIO()

        formatting.write_records([{"id": 3, "state": 1}], out, id_key="id")

        assert out.getvalue() == f"## id 3\n{'state':>25} 1\n"

    def test_shard_spaces(self):
        """Shard spaces print as a sized table."""
        out = io.StringIO()
        spaces = [
            {
                "database": "metrics",
                "name": "default",
                "regex": "/.*/",
                "retentionPolicy": "inf",
                "shardDuration": "7d",
                "replicationFactor": 1,
                "split": 1,
            }
        ]

        formatting.write_shard_spaces(spaces, out)
        header, row = out.getvalue().splitlines()

        assert header.split() == ["Database", "Name", "Regex", "Retention", "Duration", "RF", "Split"]
        assert row.split() == ["metrics", "default", "/.*/", "inf", "7d", "1", "1"]

    def test_raw(self):
        """raw dumps the wire representation."""
        out = io.StringIO()

        formatting.write_raw([Series("cpu", ["value"], [[1]])], out)

        assert "'name': 'cpu'" in out.getvalue()


class TestTiming:
    """Tests for Timing and format_duration()."""

    def test_format_duration_units(self):
        """Units scale with the duration."""
        assert format_duration(0.0005) == "500µs"
        assert format_duration(0.0125) == "12.500ms"
        assert format_duration(1.5) == "1.500s"

    def test_unknown_until_marked(self):
        """Unmarked phases read as unknown."""
        timing = Timing()

        assert timing.string_query() == "unknown"
        assert timing.string_print() == "unknown"

    def test_str(self):
        """Both phases are reported."""
        timing = Timing(pre=1.0, executed=1.5, printed=1.502)

        text = str(timing)

        assert text.startswith("query+network: 500.000ms\n")
        assert "displaying   : 2.000ms" in text
