"""Pipe network solver report (.rpt) table parsing.

Summary tables in the text report are whitespace-delimited with a fixed
column template per table, except that an optional integer day field may
precede the ``HH:MM`` time field. Whether it is present is decided per
line: when the token at the template's time slot is a bare integer and the
next token contains ``:``, every later column shifts right by one.

Row templates are kept in a registry so further tables can be added:

    >>> from floodkit import report
    >>> report.list_row_types()
    ['link_flow', 'node_depth', 'node_flooding', 'node_inflow', 'subcatchment_runoff']
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import pandas as pd

from floodkit.errors import PartialDataWarning

logger = logging.getLogger(__name__)

# Rows with fewer tokens are skipped
MIN_TOKENS: int = 5

# Table rows start after this many "---" separator lines
_SEPARATORS = 2

# Flow ratios at or below this are treated as "no capacity information"
_MIN_RATIO = 1e-4

_DAY = re.compile(r"^\d+$")


class Layout(str, Enum):
    """Which of the two candidate layouts a row follows."""

    with_day = "with_day"
    time_only = "time_only"


@dataclass(frozen=True)
class DayTime:
    """Outcome of the day/time disambiguation for one row.

    Attributes:
        layout: Detected layout.
        offset: Column shift for fields after the time slot (1 with a day, else 0).
        day: Day of simulation, when present.
        time: ``HH:MM`` token, when present.
    """

    layout: Layout
    offset: int
    day: int | None = None
    time: str | None = None


def disambiguate_day_time(tokens: Sequence[str], time_slot: int) -> DayTime:
    """Decide whether an integer day precedes the time at ``time_slot``.

    A row has a day when ``tokens[time_slot]`` is a bare integer and
    ``tokens[time_slot + 1]`` contains ``:``.

    Note:
        A genuine integer data value followed by a colon-containing token is
        indistinguishable from a day field and is read as one.
    """
    candidate = tokens[time_slot] if time_slot < len(tokens) else ""
    following = tokens[time_slot + 1] if time_slot + 1 < len(tokens) else ""
    if _DAY.match(candidate) and ":" in following:
        return DayTime(layout=Layout.with_day, offset=1, day=int(candidate), time=following)
    return DayTime(layout=Layout.time_only, offset=0, time=candidate if ":" in candidate else None)


@dataclass(frozen=True)
class Column:
    """Named numeric column of a row template.

    Attributes:
        name: Field name.
        index: Token index when the row has no day field.
        shifted: Whether the index moves right by the row's day offset.
    """

    name: str
    index: int
    shifted: bool = False

    def position(self, offset: int) -> int:
        return self.index + offset if self.shifted else self.index


@dataclass(frozen=True)
class RowTemplate:
    """Column layout of one report table.

    Attributes:
        name: Registry name.
        header: Regular expression matching the table title line.
        columns: Numeric columns; token 0 is always the element id.
        time_slot: Index where the optional day field sits, None for tables
            without a day/time field.
        min_tokens: Rows with fewer tokens are skipped.
    """

    name: str
    header: str
    columns: tuple[Column, ...]
    time_slot: int | None = None
    min_tokens: int = MIN_TOKENS

    @property
    def field_names(self) -> list[str]:
        return [c.name for c in self.columns]


# Global registry: {name: template}
_row_types: dict[str, RowTemplate] = {}


def register_row_type(template: RowTemplate) -> None:
    """Register a row template under its name.

    Raises:
        ValueError: If the template's header is not a valid regular
            expression or it has no columns.
    """
    try:
        re.compile(template.header)
    except re.error as e:
        msg = f"Row type '{template.name}' has an invalid header pattern: {e}"
        raise ValueError(msg) from e
    if not template.columns:
        msg = f"Row type '{template.name}' defines no columns"
        raise ValueError(msg)
    _row_types[template.name] = template
    logger.debug("Registered row type '%s'", template.name)


def get_row_type(name: str) -> RowTemplate:
    """Get a registered row template by name.

    Raises:
        KeyError: If the name is not registered.
    """
    if name not in _row_types:
        available = ", ".join(sorted(_row_types)) if _row_types else "(none)"
        msg = f"Unknown row type '{name}'. Available row types: {available}"
        raise KeyError(msg)
    return _row_types[name]


def list_row_types() -> list[str]:
    """Return sorted list of registered row type names."""
    return sorted(_row_types)


register_row_type(
    RowTemplate(
        name="link_flow",
        header=r"(Link|Conduit) Flow Summary",
        time_slot=3,
        columns=(
            Column("max_flow", 2),
            Column("max_velocity", 4, shifted=True),
            Column("max_full_flow", 5, shifted=True),
            Column("max_full_depth", 6, shifted=True),
        ),
    )
)
register_row_type(
    RowTemplate(
        name="node_depth",
        header=r"Node Depth Summary",
        time_slot=5,
        columns=(
            Column("avg_depth", 2),
            Column("max_depth", 3),
            Column("max_hgl", 4),
        ),
    )
)
register_row_type(
    RowTemplate(
        name="node_inflow",
        header=r"Node Inflow Summary",
        time_slot=4,
        columns=(
            Column("max_lateral_inflow", 2),
            Column("max_total_inflow", 3),
            Column("lateral_inflow_volume", 5, shifted=True),
            Column("total_inflow_volume", 6, shifted=True),
            Column("flow_balance_error", 7, shifted=True),
        ),
    )
)
register_row_type(
    RowTemplate(
        name="node_flooding",
        header=r"Node Flooding Summary",
        time_slot=3,
        columns=(
            Column("hours_flooded", 1),
            Column("max_rate", 2),
            Column("total_flood_volume", 4, shifted=True),
            Column("max_ponded_depth", 5, shifted=True),
        ),
    )
)
register_row_type(
    RowTemplate(
        name="subcatchment_runoff",
        header=r"Subcatchment Runoff Summary",
        columns=(
            Column("precip", 1),
            Column("runon", 2),
            Column("evap", 3),
            Column("infil", 4),
            Column("impervious_runoff", 5),
            Column("pervious_runoff", 6),
            Column("total_runoff_depth", 7),
            Column("total_runoff_volume", 8),
            Column("peak_runoff", 9),
            Column("runoff_coeff", 10),
        ),
    )
)


@dataclass
class ReportRow:
    """Typed fields recovered from one table row.

    Attributes:
        id: Element id (first token).
        values: Numeric fields by column name, NaN where unparseable.
        day_time: Day/time disambiguation, None for tables without a time field.
        diagnostics: Unparseable or missing fields.
    """

    id: str
    values: dict[str, float]
    day_time: DayTime | None = None
    diagnostics: list[PartialDataWarning] = field(default_factory=list)

    @property
    def offset(self) -> int:
        return self.day_time.offset if self.day_time is not None else 0

    def __getitem__(self, name: str) -> float:
        return self.values[name]


def _to_float(token: str) -> float:
    try:
        return float(token)
    except ValueError:
        return math.nan


def parse_row(line: str, row_type: str | RowTemplate, line_no: int | None = None) -> ReportRow | None:
    """Parse one table row.

    Args:
        line: Raw report line.
        row_type: Registered name or template.
        line_no: Line number used in diagnostics.

    Returns:
        The parsed row, or None when the line has fewer than
        ``min_tokens`` tokens.
    """
    template = get_row_type(row_type) if isinstance(row_type, str) else row_type
    tokens = line.split()
    if len(tokens) < template.min_tokens:
        logger.debug("Skipping short %s row (%d tokens): %r", template.name, len(tokens), line)
        return None

    day_time = None
    offset = 0
    if template.time_slot is not None:
        day_time = disambiguate_day_time(tokens, template.time_slot)
        offset = day_time.offset

    row = ReportRow(id=tokens[0], values={}, day_time=day_time)
    ref = line_no if line_no is not None else tokens[0]
    for column in template.columns:
        pos = column.position(offset)
        token = tokens[pos] if pos < len(tokens) else None
        value = math.nan if token is None else _to_float(token)
        row.values[column.name] = value
        if math.isnan(value):
            msg = f"{template.name} row '{tokens[0]}': field '{column.name}' unreadable ({token!r})"
            logger.warning(msg)
            row.diagnostics.append(PartialDataWarning(msg, row=ref))
    return row


@dataclass
class TableParse:
    """All rows of one report table.

    Attributes:
        template: Row template the table was parsed with.
        rows: Parsed rows in report order.
        diagnostics: Field-level diagnostics of every row.
    """

    template: RowTemplate
    rows: list[ReportRow] = field(default_factory=list)
    diagnostics: list[PartialDataWarning] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.template.name

    def to_dataframe(self) -> pd.DataFrame:
        """Rows as a DataFrame indexed by element id.

        Tables with a time field get ``day`` (NaN when absent) and ``time``
        columns after the numeric fields. Repeated ids keep the last row.
        """
        template = self.template
        columns = template.field_names
        if template.time_slot is not None:
            columns = [*columns, "day", "time"]
        records = []
        for row in self.rows:
            record: dict[str, object] = dict(row.values)
            if row.day_time is not None:
                record["day"] = np.nan if row.day_time.day is None else row.day_time.day
                record["time"] = row.day_time.time
            records.append(record)
        df = pd.DataFrame.from_records(records, columns=columns)
        df.index = pd.Index([row.id for row in self.rows], name="id", dtype=object)
        return df[~df.index.duplicated(keep="last")]


def _table_lines(lines: Sequence[str], header: re.Pattern[str]) -> Iterable[tuple[int, str]]:
    """Yield (line number, text) of the data rows under each matching title."""
    in_table = False
    underlined = False
    separators = 0
    for i, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not in_table:
            if header.search(line):
                in_table = True
                underlined = False
                separators = 0
            continue
        if line.startswith("---"):
            separators += 1
            continue
        if line.startswith("***"):
            if separators == 0 and not underlined:
                underlined = True
                continue
            # Start of the next section; tables without rows end here too
            in_table = False
            continue
        if separators < _SEPARATORS:
            continue
        if not line or line.startswith("Analysis begun"):
            in_table = False
            continue
        yield i, line


def parse_table(report: str, row_type: str | RowTemplate) -> TableParse:
    """Parse every row of one table type from report text."""
    template = get_row_type(row_type) if isinstance(row_type, str) else row_type
    result = TableParse(template=template)
    for line_no, line in _table_lines(report.splitlines(), re.compile(template.header)):
        row = parse_row(line, template, line_no=line_no)
        if row is None:
            continue
        result.rows.append(row)
        result.diagnostics.extend(row.diagnostics)
    logger.debug("Parsed %d %s rows", len(result.rows), template.name)
    return result


_CONTINUITY_BLOCKS: dict[str, str] = {
    "runoff": "Runoff Quantity Continuity",
    "flow_routing": "Flow Routing Continuity",
}

_CONTINUITY_LINE = re.compile(r"^\s*([A-Za-z][^.]*?)\s*\.{2,}\s*(-?[\d.]+(?:[eE][+-]?\d+)?)")


def _stat_key(label: str) -> str:
    key = re.sub(r"\(.*?\)", "", label).strip().lower()
    return re.sub(r"[^a-z0-9]+", "_", key).strip("_")


def parse_continuity(report: str) -> dict[str, dict[str, float]]:
    """Continuity statistics of the runoff and flow routing blocks.

    Returns:
        ``{"runoff": {...}, "flow_routing": {...}}`` mapping snake_case labels
        (e.g. ``total_precipitation``, ``continuity_error``) to the first
        numeric column. Blocks missing from the report map to ``{}``.
    """
    lines = report.splitlines()
    stats: dict[str, dict[str, float]] = {}
    for key, title in _CONTINUITY_BLOCKS.items():
        block: dict[str, float] = {}
        start = next((i for i, line in enumerate(lines) if title in line), None)
        if start is not None:
            for line in lines[start + 1 :]:
                match = _CONTINUITY_LINE.match(line)
                if match:
                    block[_stat_key(match.group(1))] = float(match.group(2))
                elif block and not line.strip():
                    break
        stats[key] = block
    return stats


def derive_link_metrics(link_flow: pd.DataFrame) -> pd.DataFrame:
    """Add full-flow capacity and utilization to a link flow table.

    ``capacity`` is ``max_flow / max_full_flow`` where that ratio exceeds 1e-4,
    else 0. ``utilization`` [%] is ``max_full_depth * 100``, falling back to
    the flow ratio when the depth ratio is missing, capped at 100.
    """
    df = link_flow.copy()
    ratio = df["max_full_flow"]
    usable = ratio.abs() > _MIN_RATIO
    df["capacity"] = np.where(usable, df["max_flow"] / ratio.where(usable, 1.0), 0.0)
    fill = df["max_full_depth"].fillna(ratio).fillna(0.0)
    df["utilization"] = np.minimum(fill * 100.0, 100.0)
    return df


@dataclass
class ReportResults:
    """Structured content of a solver report.

    Attributes:
        tables: DataFrame per row type, indexed by element id.
        continuity: Runoff and flow routing continuity statistics.
        diagnostics: Field-level diagnostics of every table.
    """

    tables: dict[str, pd.DataFrame] = field(default_factory=dict)
    continuity: dict[str, dict[str, float]] = field(default_factory=dict)
    diagnostics: list[PartialDataWarning] = field(default_factory=list)

    def __getitem__(self, name: str) -> pd.DataFrame:
        return self.tables[name]

    @property
    def links(self) -> pd.DataFrame:
        """Link flow table with derived capacity and utilization."""
        return derive_link_metrics(self.tables["link_flow"])


def parse_report(report: str, row_types: Iterable[str] | None = None) -> ReportResults:
    """Parse the summary tables and continuity blocks of a report.

    Args:
        report: Full report text.
        row_types: Registered row types to parse; all when None.
    """
    results = ReportResults()
    for name in row_types if row_types is not None else list_row_types():
        table = parse_table(report, name)
        results.tables[name] = table.to_dataframe()
        results.diagnostics.extend(table.diagnostics)
    results.continuity = parse_continuity(report)
    if results.diagnostics:
        logger.warning("Report parsed with %d unreadable fields", len(results.diagnostics))
    return results
