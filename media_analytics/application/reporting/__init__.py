"""Reporting views over analysis results."""

from .frames import results_to_frames
from .rendering import build_summary, render_text_summary

__all__ = ["results_to_frames", "build_summary", "render_text_summary"]
