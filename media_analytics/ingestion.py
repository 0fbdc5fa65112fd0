"""Input parsing (JSON / CSV / Excel) into domain records and Excel output via openpyxl."""

from __future__ import annotations

import json
import logging
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

import polars as pl

from media_analytics.domain.models import (
    Campaign,
    ChannelType,
    ConversionPath,
    DeliveryMetrics,
    DashboardInput,
    EntityStatus,
    Flight,
    ForecastMetrics,
    GroupMetrics,
    IncrementalityTest,
    Line,
    PerformanceMetrics,
    Placement,
    Segment,
    SegmentCategory,
    Touchpoint,
)
from media_analytics.exceptions import RecordParseError

logger = logging.getLogger(__name__)

TOUCHPOINT_COLUMNS: list[str] = ["path_id", "channel", "channel_type", "timestamp", "conversion_value"]
TOUCHPOINT_METRIC_COLUMNS: list[str] = ["cost", "conversion_value", "time_to_conversion"]


def _parse_error_threshold() -> float:
    raw = os.getenv("MEDIA_ANALYTICS_PARSE_ERROR_THRESHOLD", "0.01")
    try:
        threshold = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid MEDIA_ANALYTICS_PARSE_ERROR_THRESHOLD: {raw}") from exc
    if threshold < 0 or threshold > 1:
        raise ValueError(f"MEDIA_ANALYTICS_PARSE_ERROR_THRESHOLD must be in [0, 1], got {threshold}")
    return threshold


PARSE_ERROR_THRESHOLD = _parse_error_threshold()


def _import_openpyxl() -> tuple[Any, Any]:
    try:
        from openpyxl import Workbook, load_workbook
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("openpyxl is required for Excel I/O.") from exc
    return Workbook, load_workbook


# =============================================================================
# MAPPING -> DOMAIN RECORDS
# =============================================================================


def _get(row: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return default


def _require(row: Mapping[str, Any], record_type: str, *keys: str) -> Any:
    value = _get(row, *keys)
    if value is None or value == "":
        raise RecordParseError(
            f"{record_type} record is missing {keys[0]}",
            record_type=record_type,
            field=keys[0],
            context={"keys": list(row.keys())},
        )
    return value


def _number(row: Mapping[str, Any], record_type: str, *keys: str, default: float = 0.0) -> float:
    value = _get(row, *keys)
    if value is None or value == "":
        return default
    try:
        return float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError) as exc:
        raise RecordParseError(
            f"{record_type} field {keys[0]} is not numeric: {value!r}", record_type=record_type, field=keys[0]
        ) from exc


def _naive_utc(value: datetime) -> datetime:
    # Offsets are folded into UTC so aware and naive inputs compare and subtract.
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _datetime(value: Any, record_type: str, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as dashboards serialise Date.now().
        return _naive_utc(datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc))
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _naive_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise RecordParseError(
            f"{record_type} field {field} is not an ISO date: {value!r}", record_type=record_type, field=field
        ) from exc


def _enum(enum_cls: Any, value: Any, record_type: str, field: str, default: Any = None) -> Any:
    if value is None or value == "":
        if default is not None:
            return default
        raise RecordParseError(f"{record_type} record is missing {field}", record_type=record_type, field=field)
    try:
        return enum_cls(value)
    except ValueError:
        pass
    try:
        return enum_cls[str(value).strip().upper().replace("-", "_")]
    except KeyError as exc:
        raise RecordParseError(
            f"{record_type} field {field} has unsupported value {value!r}",
            record_type=record_type,
            field=field,
            context={"supported": [member.value for member in enum_cls]},
        ) from exc


def _optional_metrics(row: Mapping[str, Any], key: str, parser: Any) -> Any:
    block = row.get(key)
    if not isinstance(block, Mapping):
        return None
    return parser(block)


def parse_line(row: Mapping[str, Any]) -> Line:
    return Line(
        id=str(_require(row, "line", "id")),
        name=str(_get(row, "name", default="")),
        start_date=_datetime(_get(row, "startDate", "start_date"), "line", "start_date"),
        end_date=_datetime(_get(row, "endDate", "end_date"), "line", "end_date"),
        total_cost=_number(row, "line", "totalCost", "total_cost"),
        status=_enum(EntityStatus, _get(row, "status"), "line", "status", default=EntityStatus.ACTIVE),
        performance=_optional_metrics(row, "performance", PerformanceMetrics.from_row),
        delivery=_optional_metrics(row, "delivery", DeliveryMetrics.from_row),
        forecast=_optional_metrics(row, "forecast", ForecastMetrics.from_row),
        channel=_get(row, "channel"),
    )


def parse_flight(row: Mapping[str, Any]) -> Flight:
    return Flight(
        id=str(_require(row, "flight", "id")),
        name=str(_get(row, "name", default="")),
        start_date=_datetime(_get(row, "startDate", "start_date"), "flight", "start_date"),
        end_date=_datetime(_get(row, "endDate", "end_date"), "flight", "end_date"),
        budget=_number(row, "flight", "budget"),
        status=_enum(EntityStatus, _get(row, "status"), "flight", "status", default=EntityStatus.ACTIVE),
        performance=_optional_metrics(row, "performance", PerformanceMetrics.from_row),
        delivery=_optional_metrics(row, "delivery", DeliveryMetrics.from_row),
        forecast=_optional_metrics(row, "forecast", ForecastMetrics.from_row),
        lines=tuple(parse_line(line) for line in _get(row, "lines", default=[])),
    )


def parse_campaign(row: Mapping[str, Any]) -> Campaign:
    goals = _get(row, "numericGoals", "numeric_goals")
    numeric_goals = None
    if isinstance(goals, Mapping):
        numeric_goals = {
            str(metric): float(value) for metric, value in goals.items() if isinstance(value, (int, float))
        }
    return Campaign(
        id=str(_require(row, "campaign", "id")),
        name=str(_get(row, "name", default="")),
        start_date=_datetime(_get(row, "startDate", "start_date"), "campaign", "start_date"),
        end_date=_datetime(_get(row, "endDate", "end_date"), "campaign", "end_date"),
        budget=_number(row, "campaign", "budget"),
        status=_enum(EntityStatus, _get(row, "status"), "campaign", "status", default=EntityStatus.ACTIVE),
        performance=_optional_metrics(row, "performance", PerformanceMetrics.from_row),
        delivery=_optional_metrics(row, "delivery", DeliveryMetrics.from_row),
        forecast=_optional_metrics(row, "forecast", ForecastMetrics.from_row),
        flights=tuple(parse_flight(flight) for flight in _get(row, "flights", default=[])),
        numeric_goals=numeric_goals,
    )


def parse_segment(row: Mapping[str, Any]) -> Segment:
    return Segment(
        id=str(_require(row, "segment", "id")),
        name=str(_get(row, "name", default="")),
        category=_enum(SegmentCategory, _require(row, "segment", "category"), "segment", "category"),
        reach=int(_number(row, "segment", "reach")),
        cpm_uplift=_number(row, "segment", "cpmUplift", "cpm_uplift"),
        vendor=_get(row, "vendor"),
        description=_get(row, "description"),
    )


def parse_placement(row: Mapping[str, Any], library: Mapping[str, Segment] | None = None) -> Placement:
    """Parse a placement; segment entries may be full records or ids resolved via ``library``."""
    segments: List[Segment] = []
    for entry in _get(row, "segments", default=[]):
        if isinstance(entry, Mapping):
            segments.append(parse_segment(entry))
        elif library is not None and str(entry) in library:
            segments.append(library[str(entry)])
        else:
            raise RecordParseError(
                f"placement references unknown segment {entry!r}", record_type="placement", field="segments"
            )
    return Placement(
        id=str(_require(row, "placement", "id")),
        name=str(_get(row, "name", default="")),
        total_cost=_number(row, "placement", "totalCost", "total_cost"),
        segments=tuple(segments),
        performance=_optional_metrics(row, "performance", PerformanceMetrics.from_row),
    )


def _parse_group(block: Any) -> GroupMetrics | None:
    if not isinstance(block, Mapping):
        return None
    return GroupMetrics(
        spend=_number(block, "incrementality_test", "spend", default=float("nan")),
        conversions=_number(block, "incrementality_test", "conversions", default=float("nan")),
        revenue=_number(block, "incrementality_test", "revenue"),
    )


def parse_incrementality_test(row: Mapping[str, Any]) -> IncrementalityTest:
    """Parse a test; missing groups stay ``None`` so the calculator can reject them."""
    start = _datetime(_get(row, "startDate", "start_date"), "incrementality_test", "start_date")
    end = _datetime(_get(row, "endDate", "end_date"), "incrementality_test", "end_date")
    return IncrementalityTest(
        channel=str(_require(row, "incrementality_test", "channel")),
        channel_type=_enum(
            ChannelType,
            _get(row, "channelType", "channel_type"),
            "incrementality_test",
            "channel_type",
            default=ChannelType.OTHER,
        ),
        control_group=_parse_group(_get(row, "controlGroup", "control_group")),
        test_group=_parse_group(_get(row, "testGroup", "test_group")),
        start_date=start.date() if start else None,
        end_date=end.date() if end else None,
        test_id=_get(row, "id", "test_id"),
    )


def parse_touchpoint(row: Mapping[str, Any]) -> Touchpoint:
    timestamp = _datetime(_require(row, "touchpoint", "timestamp"), "touchpoint", "timestamp")
    return Touchpoint(
        channel=str(_require(row, "touchpoint", "channel")),
        channel_type=_enum(
            ChannelType, _get(row, "channelType", "channel_type"), "touchpoint", "channel_type", ChannelType.OTHER
        ),
        timestamp=timestamp,
        cost=_number(row, "touchpoint", "cost"),
        touchpoint_id=_get(row, "id", "touchpoint_id"),
    )


def parse_conversion_path(row: Mapping[str, Any]) -> ConversionPath:
    touchpoints = sorted(
        (parse_touchpoint(tp) for tp in _get(row, "touchpoints", default=[])),
        key=lambda tp: tp.timestamp,
    )
    return ConversionPath(
        touchpoints=tuple(touchpoints),
        conversion_value=_number(row, "conversion_path", "conversionValue", "conversion_value"),
        time_to_conversion=_number(row, "conversion_path", "timeToConversion", "time_to_conversion"),
        path_id=_get(row, "id", "path_id"),
        conversion_date=_datetime(
            _get(row, "conversionDate", "conversion_date"), "conversion_path", "conversion_date"
        ),
    )


def parse_dashboard_input(payload: Mapping[str, Any]) -> DashboardInput:
    segments = [parse_segment(row) for row in payload.get("segments", [])]
    library = {segment.id: segment for segment in segments}
    return DashboardInput(
        campaigns=tuple(parse_campaign(row) for row in payload.get("campaigns", [])),
        paths=tuple(parse_conversion_path(row) for row in _get(payload, "conversionPaths", "paths", default=[])),
        tests=tuple(
            parse_incrementality_test(row) for row in _get(payload, "incrementalityTests", "tests", default=[])
        ),
        segments=tuple(segments),
        placements=tuple(parse_placement(row, library) for row in payload.get("placements", [])),
        selected_segment_ids=tuple(
            str(key) for key in _get(payload, "selectedSegmentIds", "selected_segment_ids", default=[])
        ),
    )


def read_input_json(path: str | Path) -> DashboardInput:
    json_path = Path(path)
    if not json_path.exists():
        raise FileNotFoundError(f"Input JSON file not found: {json_path}")
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    if not isinstance(payload, Mapping):
        raise RecordParseError("Input JSON must be an object", record_type="dashboard_input")
    data = parse_dashboard_input(payload)
    logger.info(
        "Loaded %d campaigns, %d paths, %d tests, %d segments, %d placements from %s",
        len(data.campaigns),
        len(data.paths),
        len(data.tests),
        len(data.segments),
        len(data.placements),
        json_path,
    )
    return data


# =============================================================================
# TOUCHPOINT TABLES
# =============================================================================


def _metric_text_expr(column_name: str) -> pl.Expr:
    return pl.col(column_name).cast(pl.Utf8, strict=False).str.strip_chars()


def _metric_parsed_expr(column_name: str) -> pl.Expr:
    return _metric_text_expr(column_name).str.replace_all(",", "").cast(pl.Float64, strict=False)


def _metric_parse_error_expr(column_name: str) -> pl.Expr:
    text_expr = _metric_text_expr(column_name)
    return (
        (text_expr.is_not_null() & (text_expr != "") & _metric_parsed_expr(column_name).is_null())
        .cast(pl.UInt32)
        .alias(f"__parse_error_{column_name}")
    )


def _validate_metric_parse_errors(
    df: pl.DataFrame,
    metric_columns: Sequence[str],
    context: str,
    threshold: float = PARSE_ERROR_THRESHOLD,
) -> None:
    if df.is_empty() or threshold <= 0:
        return
    targets = [column for column in metric_columns if column in df.columns]
    if not targets:
        return

    checks = df.select([_metric_parse_error_expr(column) for column in targets])
    failures: list[str] = []
    for column in targets:
        count = int(checks.get_column(f"__parse_error_{column}").sum() or 0)
        ratio = count / df.height
        if ratio > threshold:
            failures.append(f"{column}={ratio:.2%} ({count}/{df.height})")
    if failures:
        raise ValueError(
            f"Data quality check failed in {context}: metric parse error ratio exceeds "
            f"{threshold:.2%} ({', '.join(failures)})"
        )


def _read_touchpoint_sheet(path: Path) -> pl.DataFrame:
    _, load_workbook = _import_openpyxl()
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        rows = workbook[workbook.sheetnames[0]].iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return pl.DataFrame()
        headers = [str(value).strip() if value is not None else f"column_{idx + 1}" for idx, value in enumerate(header)]
        records = [
            {name: (str(values[idx]) if idx < len(values) and values[idx] is not None else None) for idx, name in enumerate(headers)}
            for values in rows
            if values is not None and any(value is not None for value in values)
        ]
    finally:
        workbook.close()
    if not records:
        return pl.DataFrame({name: [] for name in headers}, schema={name: pl.Utf8 for name in headers})
    return pl.DataFrame(records, schema={name: pl.Utf8 for name in headers})


def touchpoints_frame_to_paths(df: pl.DataFrame) -> List[ConversionPath]:
    """Group one-row-per-touchpoint data into chronological conversion paths."""
    missing = [column for column in TOUCHPOINT_COLUMNS if column not in df.columns]
    if missing:
        raise RecordParseError(
            f"Touchpoint table is missing columns: {', '.join(missing)}",
            record_type="touchpoint",
            context={"missing": missing, "columns": df.columns},
        )
    _validate_metric_parse_errors(df, TOUCHPOINT_METRIC_COLUMNS, context="touchpoints")

    optional = {"cost": 0.0, "time_to_conversion": 0.0}
    normalized = df.with_columns(
        [
            pl.col("path_id").cast(pl.Utf8).str.strip_chars(),
            pl.col("channel").cast(pl.Utf8).str.strip_chars(),
            pl.col("channel_type").cast(pl.Utf8).str.strip_chars().str.to_uppercase().fill_null("OTHER"),
            pl.col("timestamp").cast(pl.Utf8).str.strip_chars(),
            _metric_parsed_expr("conversion_value").fill_null(0.0).alias("conversion_value"),
            *[
                (_metric_parsed_expr(column) if column in df.columns else pl.lit(None, dtype=pl.Float64))
                .fill_null(default)
                .alias(column)
                for column, default in optional.items()
            ],
        ]
    )
    dropped = normalized.filter(pl.col("path_id").is_null() | pl.col("channel").is_null())
    if dropped.height:
        logger.warning("Dropping %d touchpoint rows without path_id or channel", dropped.height)
    normalized = normalized.filter(pl.col("path_id").is_not_null() & pl.col("channel").is_not_null())

    paths: List[ConversionPath] = []
    for scoped in normalized.partition_by("path_id", maintain_order=True):
        rows = scoped.to_dicts()
        first = rows[0]
        paths.append(
            parse_conversion_path(
                {
                    "id": first["path_id"],
                    "conversion_value": first["conversion_value"],
                    "time_to_conversion": first["time_to_conversion"],
                    "conversion_date": first.get("conversion_date"),
                    "touchpoints": [
                        {
                            "id": row.get("touchpoint_id"),
                            "channel": row["channel"],
                            "channel_type": row["channel_type"],
                            "timestamp": row["timestamp"],
                            "cost": row["cost"],
                        }
                        for row in rows
                    ],
                }
            )
        )
    logger.info("Built %d conversion paths from %d touchpoint rows", len(paths), normalized.height)
    return paths


def read_touchpoints_csv(path: str | Path) -> List[ConversionPath]:
    """Read a touchpoint table (CSV, or XLSX via openpyxl) into conversion paths."""
    table_path = Path(path)
    if not table_path.exists():
        raise FileNotFoundError(f"Touchpoint file not found: {table_path}")
    if table_path.suffix.lower() in (".xlsx", ".xlsm"):
        df = _read_touchpoint_sheet(table_path)
    else:
        df = pl.read_csv(table_path, infer_schema_length=0)
    return touchpoints_frame_to_paths(df)


# =============================================================================
# EXCEL OUTPUT
# =============================================================================


def _excel_cell_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (int, bool, str, datetime, date)):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def write_output_excel(path: str | Path, sheets: Dict[str, pl.DataFrame]) -> None:
    """Write one worksheet per frame; sheet titles are cut to Excel's 31 characters."""
    Workbook, _ = _import_openpyxl()
    excel_path = Path(path)
    workbook = Workbook()
    workbook.remove(workbook.active)

    for sheet_name, frame in sheets.items():
        worksheet = workbook.create_sheet(title=str(sheet_name)[:31])
        worksheet.append(frame.columns)
        for row in frame.iter_rows(named=False):
            worksheet.append([_excel_cell_value(value) for value in row])
    if not sheets:
        workbook.create_sheet(title="summary")

    excel_path.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(excel_path)
