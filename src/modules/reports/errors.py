"""Exceptions raised by the report store and query executor."""

from __future__ import annotations


class ReportError(Exception):
    """Base class for report failures."""


class ReportNotFoundError(ReportError, KeyError):
    """Raised when a report id does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else super().__str__()


class ReportsDisabledError(ReportError):
    """Raised when the report feature is switched off in configuration."""


class QueryTooLargeError(ReportError):
    """Raised when SQL text exceeds the configured size ceiling."""


class ReportExecutionError(ReportError):
    """Raised when the database engine rejects a stored query."""
