"""
Tests for JSON, CSV and Excel ingestion and the Excel writer.
"""

import json
from datetime import datetime

import polars as pl
import pytest
from openpyxl import Workbook, load_workbook

from media_analytics import ingestion
from media_analytics.attribution import path_credits
from media_analytics.domain.models import AttributionModel, ChannelType, EntityStatus, SegmentCategory
from media_analytics.exceptions import InvalidTestInputError, RecordParseError
from media_analytics.incrementality import calculate_incrementality
from media_analytics.ingestion import (
    parse_campaign,
    parse_dashboard_input,
    parse_placement,
    parse_segment,
    parse_touchpoint,
    read_input_json,
    read_touchpoints_csv,
    touchpoints_frame_to_paths,
    write_output_excel,
)


PAYLOAD = {
    "campaigns": [
        {
            "id": "c1",
            "name": "Spring",
            "startDate": "2025-06-01T00:00:00Z",
            "endDate": "2025-06-30",
            "budget": "10,000",
            "status": "active",
            "numericGoals": {"conversions": 500, "note": "stretch"},
            "performance": {"ctr": 2.5, "conversions": 40},
            "delivery": {"actualSpend": 4000, "actualImpressions": 120000},
            "flights": [{"id": "f1", "name": "June", "budget": 5000, "lines": [{"id": "l1", "totalCost": 100}]}],
        }
    ],
    "conversionPaths": [
        {
            "id": "p1",
            "conversionValue": 120,
            "touchpoints": [
                {"channel": "b", "channelType": "social", "timestamp": "2025-06-02T00:00:00"},
                {"channel": "a", "channelType": "SEARCH", "timestamp": "2025-06-01T00:00:00", "cost": 3},
            ],
        }
    ],
    "incrementalityTests": [
        {
            "id": "t1",
            "channel": "Paid Social",
            "channelType": "SOCIAL",
            "controlGroup": {"spend": 100, "conversions": 5},
            "testGroup": {"spend": 100},
        }
    ],
    "segments": [
        {"id": "s1", "name": "Auto", "category": "Behavioral", "reach": 1000, "cpmUplift": 2.5},
        {"id": "s2", "name": "Owned", "category": "FIRST_PARTY"},
    ],
    "placements": [
        {
            "id": "pl1",
            "name": "Homepage",
            "totalCost": 500,
            "segments": ["s1", {"id": "s3", "name": "Inline", "category": "b2b"}],
            "performance": {"impressions": 1000},
        }
    ],
    "selectedSegmentIds": ["s1"],
}


# =============================================================================
# RECORD PARSING
# =============================================================================


class TestDashboardInput:
    def test_campaign_hierarchy(self):
        data = parse_dashboard_input(PAYLOAD)
        campaign = data.campaigns[0]
        assert campaign.budget == 10_000.0
        assert campaign.status == EntityStatus.ACTIVE
        assert campaign.numeric_goals == {"conversions": 500.0}
        assert campaign.start_date == datetime(2025, 6, 1)
        assert campaign.end_date == datetime(2025, 6, 30)
        assert campaign.delivery.actual_spend == 4000.0
        assert campaign.performance.ctr == 2.5
        assert campaign.flights[0].lines[0].total_cost == 100.0

    def test_paths_are_chronological(self):
        path = parse_dashboard_input(PAYLOAD).paths[0]
        assert [tp.channel for tp in path.touchpoints] == ["a", "b"]
        assert path.touchpoints[1].channel_type == ChannelType.SOCIAL
        assert path.touchpoints[0].cost == 3.0
        assert path.conversion_value == 120.0

    def test_segments_and_placements(self):
        data = parse_dashboard_input(PAYLOAD)
        assert data.segments[1].category == SegmentCategory.FIRST_PARTY
        placement = data.placements[0]
        assert [segment.id for segment in placement.segments] == ["s1", "s3"]
        assert placement.segments[1].category == SegmentCategory.B2B
        assert data.selected_segment_ids == ("s1",)

    def test_incomplete_group_is_rejected_by_calculator(self):
        test = parse_dashboard_input(PAYLOAD).tests[0]
        assert test.test_id == "t1"
        with pytest.raises(InvalidTestInputError) as exc_info:
            calculate_incrementality(test)
        assert exc_info.value.group == "test"
        assert exc_info.value.field == "conversions"

    def test_snake_case_keys(self):
        data = parse_dashboard_input(
            {"paths": [{"path_id": "p9", "conversion_value": 5, "touchpoints": []}], "selected_segment_ids": ["x"]}
        )
        assert data.paths[0].path_id == "p9"
        assert data.selected_segment_ids == ("x",)

    def test_empty_payload(self):
        data = parse_dashboard_input({})
        assert data.campaigns == ()
        assert data.paths == ()


class TestRecordErrors:
    def test_missing_id(self):
        with pytest.raises(RecordParseError) as exc_info:
            parse_campaign({"name": "No id"})
        assert exc_info.value.record_type == "campaign"
        assert exc_info.value.field == "id"

    def test_unknown_category(self):
        with pytest.raises(RecordParseError) as exc_info:
            parse_segment({"id": "s1", "category": "Psychographic"})
        assert "Demographics" in exc_info.value.context["supported"]

    def test_bad_number(self):
        with pytest.raises(RecordParseError):
            parse_campaign({"id": "c1", "budget": "lots"})

    def test_bad_date(self):
        with pytest.raises(RecordParseError):
            parse_touchpoint({"channel": "a", "timestamp": "yesterday"})

    def test_unknown_placement_segment(self):
        with pytest.raises(RecordParseError):
            parse_placement({"id": "p1", "segments": ["nope"]}, library={})

    def test_epoch_millisecond_timestamps(self):
        touchpoint = parse_touchpoint({"channel": "a", "timestamp": 1_717_200_000_000})
        assert touchpoint.timestamp == datetime(2024, 6, 1, 0, 0)
        assert touchpoint.channel_type == ChannelType.OTHER


class TestTimestamps:
    def test_offsets_are_folded_into_utc(self):
        touchpoint = parse_touchpoint({"channel": "a", "timestamp": "2024-01-01T09:00:00+09:00"})
        assert touchpoint.timestamp == datetime(2024, 1, 1, 0, 0)
        assert touchpoint.timestamp.tzinfo is None

    def test_mixed_aware_and_naive_touchpoints(self):
        path = ingestion.parse_conversion_path(
            {
                "id": "p1",
                "conversionValue": 10,
                "touchpoints": [
                    {"channel": "late", "timestamp": "2024-01-03T00:00:00"},
                    {"channel": "early", "timestamp": "2024-01-01T00:00:00Z"},
                ],
            }
        )
        assert [tp.channel for tp in path.touchpoints] == ["early", "late"]

    def test_aware_conversion_date_with_naive_touchpoints(self):
        path = ingestion.parse_conversion_path(
            {
                "id": "p1",
                "conversionValue": 10,
                "conversionDate": "2024-01-08T00:00:00Z",
                "touchpoints": [
                    {"channel": "old", "timestamp": "2024-01-01T00:00:00"},
                    {"channel": "new", "timestamp": "2024-01-08T00:00:00"},
                ],
            }
        )
        assert path.conversion_date == datetime(2024, 1, 8)
        old, new = path_credits(path, AttributionModel.TIME_DECAY)
        assert old / new == pytest.approx(0.5)


class TestReadInputJson:
    def test_reads_file(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text(json.dumps(PAYLOAD), encoding="utf-8")
        data = read_input_json(path)
        assert len(data.campaigns) == 1
        assert len(data.placements) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_input_json(tmp_path / "missing.json")

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(RecordParseError):
            read_input_json(path)


# =============================================================================
# TOUCHPOINT TABLES
# =============================================================================


CSV_TEXT = """path_id,channel,channel_type,timestamp,conversion_value,cost
p1,search,search,2025-06-01T10:00:00,300,12.5
p1,social,SOCIAL,2025-05-30T09:00:00,300,5
p2,email,email,2025-06-02T08:00:00,50,
"""


class TestTouchpointTables:
    def test_csv_to_paths(self, tmp_path):
        path = tmp_path / "touchpoints.csv"
        path.write_text(CSV_TEXT, encoding="utf-8")
        paths = read_touchpoints_csv(path)

        assert [p.path_id for p in paths] == ["p1", "p2"]
        first = paths[0]
        assert [tp.channel for tp in first.touchpoints] == ["social", "search"]
        assert first.touchpoints[1].channel_type == ChannelType.SEARCH
        assert first.touchpoints[1].cost == 12.5
        assert first.conversion_value == 300.0
        assert paths[1].touchpoints[0].cost == 0.0

    def test_xlsx_to_paths(self, tmp_path):
        path = tmp_path / "touchpoints.xlsx"
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(["path_id", "channel", "channel_type", "timestamp", "conversion_value"])
        sheet.append(["p1", "display", "DISPLAY", "2025-06-01T10:00:00", 80])
        sheet.append(["p1", "search", "SEARCH", "2025-06-03T10:00:00", 80])
        workbook.save(path)

        paths = read_touchpoints_csv(path)
        assert len(paths) == 1
        assert [tp.channel for tp in paths[0].touchpoints] == ["display", "search"]
        assert paths[0].conversion_value == 80.0

    def test_missing_columns(self):
        with pytest.raises(RecordParseError) as exc_info:
            touchpoints_frame_to_paths(pl.DataFrame({"path_id": ["p1"], "channel": ["a"]}))
        assert "timestamp" in exc_info.value.context["missing"]

    def test_parse_error_ratio_enforced(self):
        df = pl.DataFrame(
            {
                "path_id": ["p1", "p1", "p2"],
                "channel": ["a", "b", "c"],
                "channel_type": ["SEARCH", "SEARCH", "SEARCH"],
                "timestamp": ["2025-06-01", "2025-06-02", "2025-06-03"],
                "conversion_value": ["10", "10", "20"],
                "cost": ["1", "abc", "2"],
            }
        )
        with pytest.raises(ValueError, match="cost"):
            touchpoints_frame_to_paths(df)

    def test_parse_error_ratio_threshold_disabled(self):
        df = pl.DataFrame({"cost": ["abc"]})
        ingestion._validate_metric_parse_errors(df, ["cost"], context="test", threshold=0.0)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_touchpoints_csv(tmp_path / "none.csv")


class TestParseErrorThreshold:
    def test_default(self, monkeypatch):
        monkeypatch.delenv("MEDIA_ANALYTICS_PARSE_ERROR_THRESHOLD", raising=False)
        assert ingestion._parse_error_threshold() == 0.01

    def test_override(self, monkeypatch):
        monkeypatch.setenv("MEDIA_ANALYTICS_PARSE_ERROR_THRESHOLD", "0.25")
        assert ingestion._parse_error_threshold() == 0.25

    @pytest.mark.parametrize("raw", ["abc", "1.5", "-0.1"])
    def test_invalid(self, monkeypatch, raw):
        monkeypatch.setenv("MEDIA_ANALYTICS_PARSE_ERROR_THRESHOLD", raw)
        with pytest.raises(ValueError):
            ingestion._parse_error_threshold()


# =============================================================================
# EXCEL OUTPUT
# =============================================================================


class TestWriteOutputExcel:
    def test_sheets_and_cells(self, tmp_path):
        path = tmp_path / "out" / "report.xlsx"
        long_name = "segment_performance_by_category_and_vendor"
        sheets = {
            "attribution": pl.DataFrame({"channel": ["search", "social"], "roas": [2.5, float("nan")]}),
            long_name: pl.DataFrame({"segment": ["s1"], "placements": [3]}),
        }
        write_output_excel(path, sheets)

        workbook = load_workbook(path)
        assert workbook.sheetnames == ["attribution", long_name[:31]]
        rows = list(workbook["attribution"].iter_rows(values_only=True))
        assert rows == [("channel", "roas"), ("search", 2.5), ("social", None)]

    def test_empty_workbook_has_placeholder_sheet(self, tmp_path):
        path = tmp_path / "empty.xlsx"
        write_output_excel(path, {})
        assert load_workbook(path).sheetnames == ["summary"]
