"""Application layer package."""

from .analysis_service import AnalysisResult, campaign_goals, run_dashboard_analysis

__all__ = ["AnalysisResult", "campaign_goals", "run_dashboard_analysis"]
