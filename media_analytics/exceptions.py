"""Exception hierarchy for the analytics engines.

Unsupported input is rejected with one of these errors. Missing data is not an
error: engines return ``None`` or an empty result instead.
"""

from __future__ import annotations

from typing import Any


class AnalyticsError(ValueError):
    """Base exception for all analytics engine errors."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


class InvalidModelError(AnalyticsError):
    """Raised when an attribution model is not one of the supported models."""

    def __init__(self, message: str, *, model: Any = None, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        if model is not None:
            ctx["model"] = model
        super().__init__(message, context=ctx)
        self.model = model


class InvalidTestInputError(AnalyticsError):
    """Raised when an incrementality test has missing or negative group inputs."""

    def __init__(
        self,
        message: str,
        *,
        group: str | None = None,
        field: str | None = None,
        value: Any = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if group is not None:
            ctx["group"] = group
        if field is not None:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = value
        super().__init__(message, context=ctx)
        self.group = group
        self.field = field
        self.value = value


class RecordParseError(AnalyticsError):
    """Raised when an input record cannot be converted into a domain object."""

    def __init__(
        self,
        message: str,
        *,
        record_type: str,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        ctx["record_type"] = record_type
        if field is not None:
            ctx["field"] = field
        super().__init__(message, context=ctx)
        self.record_type = record_type
        self.field = field
