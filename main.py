from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from media_analytics.application.analysis_service import run_dashboard_analysis
from media_analytics.application.reporting.frames import results_to_frames
from media_analytics.application.reporting.rendering import build_summary, render_text_summary
from media_analytics.config import get_settings
from media_analytics.domain.models import AttributionModel
from media_analytics.infrastructure import (
    load_dashboard_input,
    save_output_workbook,
    save_summary_json,
    save_summary_text,
)

DEFAULT_OUTPUT_DIR = "output"
LOG_LEVEL_ENV = "MEDIA_ANALYTICS_LOG_LEVEL"


def _configure_logging() -> None:
    level_name = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Invalid {LOG_LEVEL_ENV}: {level_name}")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run media campaign analytics over a dashboard export.")
    parser.add_argument("input", type=Path, help="Dashboard input JSON (campaigns, paths, tests, segments).")
    parser.add_argument("--touchpoints", type=Path, default=None, help="Touchpoint CSV/XLSX replacing JSON paths.")
    parser.add_argument(
        "--model",
        default=AttributionModel.LINEAR.value,
        choices=[model.value for model in AttributionModel],
        help="Attribution model for the headline channel table.",
    )
    parser.add_argument("--output-dir", type=Path, default=Path(DEFAULT_OUTPUT_DIR))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    _configure_logging()

    data = load_dashboard_input(args.input, args.touchpoints)
    result = run_dashboard_analysis(data, model=args.model, settings=get_settings())

    output_json_path = args.output_dir / "summary.json"
    output_text_path = args.output_dir / "summary.txt"
    output_excel_path = args.output_dir / "summary.xlsx"

    text = render_text_summary(result)
    save_summary_json(output_json_path, build_summary(result))
    save_summary_text(output_text_path, text)
    excel_saved, excel_error_message = save_output_workbook(output_excel_path, results_to_frames(result))

    print(text)
    print(f"Saved JSON: {output_json_path}")
    print(f"Saved text: {output_text_path}")
    if excel_saved:
        print(f"Saved Excel: {output_excel_path}")
    else:
        print(f"Excel save skipped (file may be open/locked): {excel_error_message}")


if __name__ == "__main__":
    main()
