"""Security related utilities."""

from .sql_guard import (
    SQLSecurityError,
    SqlStatementValidator,
    ValidationError,
    ValidationResult,
    ViolationKind,
    check_sql,
    count_statement_separators,
    normalize_query,
    validate_sql,
)

__all__ = [
    "SQLSecurityError",
    "SqlStatementValidator",
    "ValidationError",
    "ValidationResult",
    "ViolationKind",
    "check_sql",
    "count_statement_separators",
    "normalize_query",
    "validate_sql",
]
