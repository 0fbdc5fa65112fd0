"""Infrastructure adapter for file-based dashboard inputs and workbook output."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

import polars as pl

from media_analytics.domain.models import DashboardInput
from media_analytics.ingestion import read_input_json, read_touchpoints_csv, write_output_excel

logger = logging.getLogger(__name__)


def load_dashboard_input(path: Path, touchpoints_path: Path | None = None) -> DashboardInput:
    """Load the JSON input; a touchpoint table, when given, replaces its conversion paths."""
    data = read_input_json(path)
    if touchpoints_path is None:
        return data
    paths = read_touchpoints_csv(touchpoints_path)
    if data.paths:
        logger.info("Touchpoint table overrides %d conversion paths from %s", len(data.paths), path)
    return replace(data, paths=tuple(paths))


def save_output_workbook(path: Path, sheets: dict[str, pl.DataFrame]) -> tuple[bool, str]:
    try:
        write_output_excel(path, sheets)
    except PermissionError as exc:
        return False, str(exc)
    return True, ""
