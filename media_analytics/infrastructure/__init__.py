"""Infrastructure layer package."""

from .file_repository import load_dashboard_input, save_output_workbook
from .report_exporter import save_summary_json, save_summary_text

__all__ = ["load_dashboard_input", "save_output_workbook", "save_summary_json", "save_summary_text"]
