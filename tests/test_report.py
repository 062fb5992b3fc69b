"""Tests for report table parsing.

Tests cover day/time offset detection, row parsing with unreadable fields,
table scanning, continuity blocks, derived link metrics, and the row type
registry.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from floodkit import report
from floodkit.report import (
    Column,
    Layout,
    RowTemplate,
    derive_link_metrics,
    disambiguate_day_time,
    get_row_type,
    list_row_types,
    parse_continuity,
    parse_report,
    parse_row,
    parse_table,
    register_row_type,
)

SAMPLE_REPORT = """
  EPA STORM WATER MANAGEMENT MODEL - VERSION 5.2

  **************************        Volume         Depth
  Runoff Quantity Continuity     hectare-m            mm
  **************************     ---------       -------
  Total Precipitation ......         0.150        50.000
  Surface Runoff ...........         0.120        40.000
  Continuity Error (%) .....        -0.250

  **************************        Volume        Volume
  Flow Routing Continuity        hectare-m      10^6 ltr
  **************************     ---------     ---------
  Wet Weather Inflow .......         0.120         1.200
  External Outflow .........         0.118         1.180
  Continuity Error (%) .....         0.310

  ******************
  Node Depth Summary
  ******************

  ---------------------------------------------------------------------------------
                                 Average  Maximum  Maximum  Time of Max    Reported
  Node                 Type       Meters   Meters   Meters  days hr:min   Max Depth
  ---------------------------------------------------------------------------------
  J1                   JUNCTION     0.10     0.50    10.50     0  01:05       0.50
  J2                   JUNCTION     0.20     0.60    11.60  02:10       0.60

  *********************
  Node Flooding Summary
  *********************

  No nodes were flooded.


  ***********************
  Outfall Loading Summary
  ***********************

  -----------------------------------------------------------
                         Flow       Avg       Max       Total
  Outfall Node       Freq Pcnt      Flow      Flow      Volume
  -----------------------------------------------------------
  OF1                    99.50     0.123     0.456       1.234


  *****************
  Link Flow Summary
  *****************

  -----------------------------------------------------------------------------
                                 Maximum  Time of Max   Maximum    Max/    Max/
                                  |Flow|   Occurrence   |Veloc|    Full    Full
  Link                 Type          CMS  days hr:min    m/sec    Flow   Depth
  -----------------------------------------------------------------------------
  L1                   CONDUIT     10.5     0  12:00     1.50    0.75    0.40
  L2                   CONDUIT      2.0  12:00     0.80    0.00    0.90
  L3                   CONDUIT      abc     1  02:30     0.60    0.50    0.20


  Analysis begun on:  Mon Jan  1 00:00:00 2024
"""


class TestDisambiguateDayTime:
    """Tests for disambiguate_day_time."""

    def test_with_day(self) -> None:
        result = disambiguate_day_time(["L1", "CONDUIT", "10.5", "0", "12:00", "1.50"], 3)

        assert result.layout is Layout.with_day
        assert result.offset == 1
        assert result.day == 0
        assert result.time == "12:00"

    def test_time_only(self) -> None:
        result = disambiguate_day_time(["L1", "CONDUIT", "10.5", "12:00", "1.50"], 3)

        assert result.layout is Layout.time_only
        assert result.offset == 0
        assert result.day is None
        assert result.time == "12:00"

    def test_integer_without_following_time_is_not_a_day(self) -> None:
        result = disambiguate_day_time(["N1", "JUNCTION", "3", "4", "5"], 3)

        assert result.offset == 0
        assert result.time is None

    def test_integer_before_colon_token_reads_as_day(self) -> None:
        """An integer value followed by a colon token is taken as a day."""
        result = disambiguate_day_time(["X", "T", "5", "07:00"], 2)

        assert result.layout is Layout.with_day
        assert result.day == 5

    def test_slot_past_end(self) -> None:
        result = disambiguate_day_time(["A", "B"], 5)

        assert result.offset == 0


class TestParseRow:
    """Tests for parse_row."""

    def test_row_with_day_field(self) -> None:
        row = parse_row("L1 CONDUIT 10.5 0 12:00 1.50 0.75 0.40", "link_flow")

        assert row is not None
        assert row.offset == 1
        assert row.id == "L1"
        assert row["max_flow"] == 10.5
        assert row["max_velocity"] == 1.50
        assert row["max_full_flow"] == 0.75
        assert row["max_full_depth"] == 0.40
        assert row.diagnostics == []

    def test_row_without_day_field(self) -> None:
        row = parse_row("L1 CONDUIT 10.5 12:00 1.50 0.75 0.40", "link_flow")

        assert row is not None
        assert row.offset == 0
        assert row["max_flow"] == 10.5
        assert row["max_velocity"] == 1.50
        assert row["max_full_depth"] == 0.40

    def test_short_row_is_skipped(self) -> None:
        assert parse_row("L1 CONDUIT 10.5", "link_flow") is None

    def test_unreadable_field_is_nan_with_diagnostic(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="floodkit.report"):
            row = parse_row("L3 CONDUIT abc 1 02:30 0.60 0.50 0.20", "link_flow", line_no=42)

        assert row is not None
        assert np.isnan(row["max_flow"])
        assert row["max_velocity"] == 0.60
        assert len(row.diagnostics) == 1
        assert row.diagnostics[0].row == 42
        assert "max_flow" in caplog.text

    def test_missing_trailing_field_is_nan(self) -> None:
        row = parse_row("L1 CONDUIT 10.5 0 12:00 1.50", "link_flow")

        assert row is not None
        assert np.isnan(row["max_full_flow"])
        assert len(row.diagnostics) == 2

    def test_unshifted_columns_ignore_day(self) -> None:
        with_day = parse_row("J1 JUNCTION 0.10 0.50 10.50 0 01:05 0.50", "node_depth")
        without_day = parse_row("J1 JUNCTION 0.10 0.50 10.50 01:05 0.50", "node_depth")

        assert with_day is not None and without_day is not None
        assert with_day.values == without_day.values


class TestParseTable:
    """Tests for table scanning."""

    def test_link_flow_rows(self) -> None:
        table = parse_table(SAMPLE_REPORT, "link_flow")

        assert [row.id for row in table.rows] == ["L1", "L2", "L3"]
        assert [row.offset for row in table.rows] == [1, 0, 1]
        assert table.rows[1]["max_full_depth"] == 0.90
        assert len(table.diagnostics) == 1

    def test_empty_table_does_not_read_next_section(self) -> None:
        table = parse_table(SAMPLE_REPORT, "node_flooding")

        assert table.rows == []

    def test_to_dataframe(self) -> None:
        df = parse_table(SAMPLE_REPORT, "node_depth").to_dataframe()

        assert df.index.name == "id"
        assert list(df.columns) == ["avg_depth", "max_depth", "max_hgl", "day", "time"]
        assert df.loc["J1", "max_hgl"] == 10.50
        assert df.loc["J1", "day"] == 0
        assert np.isnan(df.loc["J2", "day"])
        assert df.loc["J2", "time"] == "02:10"

    def test_repeated_ids_keep_last(self) -> None:
        text = SAMPLE_REPORT.replace("  L2 ", "  L1 ")
        df = parse_table(text, "link_flow").to_dataframe()

        assert df.loc["L1", "max_flow"] == 2.0
        assert len(df) == 2

    def test_missing_table_is_empty(self) -> None:
        table = parse_table(SAMPLE_REPORT, "subcatchment_runoff")

        assert table.rows == []
        assert table.to_dataframe().empty


class TestParseContinuity:
    """Tests for parse_continuity."""

    def test_both_blocks(self) -> None:
        stats = parse_continuity(SAMPLE_REPORT)

        assert stats["runoff"]["total_precipitation"] == 0.150
        assert stats["runoff"]["continuity_error"] == -0.250
        assert stats["flow_routing"]["external_outflow"] == 0.118
        assert stats["flow_routing"]["continuity_error"] == 0.310

    def test_missing_blocks_are_empty(self) -> None:
        assert parse_continuity("nothing here") == {"runoff": {}, "flow_routing": {}}


class TestDeriveLinkMetrics:
    """Tests for derive_link_metrics."""

    def test_capacity_and_utilization(self) -> None:
        df = pd.DataFrame(
            {
                "max_flow": [1.0, 1.0, 3.0, 1.0],
                "max_full_flow": [0.5, 2.0, 0.0, 0.5],
                "max_full_depth": [np.nan, 0.3, 0.9, 1.5],
            },
            index=["A", "B", "C", "D"],
        )

        result = derive_link_metrics(df)

        np.testing.assert_allclose(result["capacity"], [2.0, 0.5, 0.0, 2.0])
        np.testing.assert_allclose(result["utilization"], [50.0, 30.0, 90.0, 100.0])
        assert "capacity" not in df.columns


class TestParseReport:
    """Tests for parse_report."""

    def test_tables_and_continuity(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="floodkit.report"):
            results = parse_report(SAMPLE_REPORT)

        assert set(results.tables) == set(list_row_types())
        assert len(results["link_flow"]) == 3
        assert results.continuity["runoff"]["surface_runoff"] == 0.120
        assert len(results.diagnostics) == 1
        assert "1 unreadable fields" in caplog.text

    def test_links_property(self) -> None:
        links = parse_report(SAMPLE_REPORT, row_types=["link_flow"]).links

        assert links.loc["L1", "capacity"] == pytest.approx(14.0)
        assert links.loc["L1", "utilization"] == pytest.approx(40.0)
        assert links.loc["L2", "capacity"] == 0.0


class TestRowTypeRegistry:
    """Tests for the row type registry."""

    @pytest.fixture(autouse=True)
    def _isolated_registry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(report, "_row_types", dict(report._row_types))

    def test_builtin_row_types(self) -> None:
        assert list_row_types() == ["link_flow", "node_depth", "node_flooding", "node_inflow", "subcatchment_runoff"]

    def test_unknown_row_type(self) -> None:
        with pytest.raises(KeyError, match="Unknown row type"):
            get_row_type("pump_summary")

    def test_register_custom_row_type(self) -> None:
        template = RowTemplate(
            name="pump_summary",
            header=r"Pumping Summary",
            columns=(Column("percent_utilized", 1), Column("max_flow", 3)),
            min_tokens=4,
        )
        register_row_type(template)

        assert "pump_summary" in list_row_types()
        row = parse_row("P1 45.0 1 0.25 0.10", "pump_summary")
        assert row is not None
        assert row["max_flow"] == 0.25

    def test_rejects_invalid_header(self) -> None:
        with pytest.raises(ValueError, match="invalid header"):
            register_row_type(RowTemplate(name="broken", header="(", columns=(Column("x", 1),)))

    def test_rejects_template_without_columns(self) -> None:
        with pytest.raises(ValueError, match="no columns"):
            register_row_type(RowTemplate(name="empty", header="Empty", columns=()))
