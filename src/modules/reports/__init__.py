"""Stored report definitions and their execution."""

from .errors import (
    QueryTooLargeError,
    ReportError,
    ReportExecutionError,
    ReportNotFoundError,
    ReportsDisabledError,
)
from .executor import (
    ReportQueryExecutor,
    build_wrapped_query,
    extract_sql_error_message,
    format_sql,
    quote_identifier,
)
from .models import ReportDefinition
from .store import ReportStore

__all__ = [
    "QueryTooLargeError",
    "ReportDefinition",
    "ReportError",
    "ReportExecutionError",
    "ReportNotFoundError",
    "ReportQueryExecutor",
    "ReportStore",
    "ReportsDisabledError",
    "build_wrapped_query",
    "extract_sql_error_message",
    "format_sql",
    "quote_identifier",
]
