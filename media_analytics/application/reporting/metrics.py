"""Shared formatting utilities for reporting."""

from __future__ import annotations


def fmt_money(value: float | None) -> str:
    if value is None:
        return "$0"
    sign = "-" if value < 0 else ""
    abs_value = abs(value)
    if abs_value >= 1_000_000:
        return f"{sign}${abs_value / 1_000_000:.1f}M"
    if abs_value >= 1_000:
        return f"{sign}${abs_value / 1_000:.0f}K"
    return f"{sign}${abs_value:.0f}"


def fmt_count(value: float | None) -> str:
    if value is None:
        return "N/A"
    if abs(value) >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if abs(value) >= 1_000:
        return f"{value / 1_000:.0f}K"
    return f"{value:.0f}"


def fmt_pct(value: float | None, signed: bool = False) -> str:
    """Format a fraction (0.25) as a percentage."""
    if value is None:
        return "N/A"
    if signed:
        return f"{value * 100:+.1f}%"
    return f"{value * 100:.1f}%"


def fmt_roas(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:.2f}x"


def severity_marker(severity: str) -> str:
    return {"CRITICAL": "[!!]", "WARNING": "[!]", "INFO": "[i]"}.get(str(severity).upper(), "[?]")
