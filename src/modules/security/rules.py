"""Static rule tables used by :mod:`modules.security.sql_guard`.

All tables are immutable tuples built once at import time. Patterns are
matched against the *normalized* query (comments stripped, whitespace
collapsed, upper-cased), so keyword phrases only ever need single spaces.
"""

from __future__ import annotations

import re
from typing import NamedTuple, Pattern

__all__ = [
    "ALLOWED_LEADING_KEYWORDS",
    "DANGEROUS_KEYWORDS",
    "KeywordRule",
    "SUSPICIOUS_PATTERNS",
    "SuspiciousPattern",
]


class KeywordRule(NamedTuple):
    """A forbidden keyword phrase and its word-bounded pattern."""

    keyword: str
    pattern: Pattern[str]


class SuspiciousPattern(NamedTuple):
    """A regular expression flagging injection or reconnaissance attempts."""

    pattern: Pattern[str]
    message: str


def _keyword_rule(keyword: str) -> KeywordRule:
    return KeywordRule(keyword, re.compile(r"\b" + re.escape(keyword) + r"\b", re.IGNORECASE))


# Order matters: the first matching phrase is the one reported.
_DANGEROUS_PHRASES: tuple[str, ...] = (
    # DDL
    "ALTER TABLE",
    "ALTER DATABASE",
    "ALTER VIEW",
    "ALTER FUNCTION",
    "ALTER PROCEDURE",
    "ALTER TRIGGER",
    "CREATE TABLE",
    "CREATE DATABASE",
    "CREATE INDEX",
    "CREATE VIEW",
    "CREATE FUNCTION",
    "CREATE PROCEDURE",
    "CREATE TRIGGER",
    "CREATE USER",
    "DROP TABLE",
    "DROP DATABASE",
    "DROP INDEX",
    "DROP VIEW",
    "DROP FUNCTION",
    "DROP PROCEDURE",
    "DROP TRIGGER",
    "DROP USER",
    "TRUNCATE TABLE",
    "TRUNCATE",
    "RENAME TABLE",
    # Destructive DML
    "DELETE FROM",
    "UPDATE",
    "INSERT INTO",
    "REPLACE INTO",
    # Permissions
    "GRANT",
    "REVOKE",
    "FLUSH",
    # Transaction control
    "COMMIT",
    "ROLLBACK",
    "LOCK TABLE",
    "UNLOCK TABLE",
    # System
    "SHOW PROCESSLIST",
    "KILL",
    "EXEC",
    "EXECUTE",
    "CALL",
    # File I/O
    "LOAD DATA",
    "LOAD FILE",
    "INTO OUTFILE",
    "INTO DUMPFILE",
    # Session
    "SET PASSWORD",
    "SET GLOBAL",
    "SET SESSION",
)

DANGEROUS_KEYWORDS: tuple[KeywordRule, ...] = tuple(_keyword_rule(kw) for kw in _DANGEROUS_PHRASES)

# ``WITH`` covers common table expressions, ``WITH RECURSIVE`` included.
ALLOWED_LEADING_KEYWORDS: tuple[str, ...] = ("SELECT", "WITH")

# UNION SELECT is deliberately absent: legitimate reports combine result sets.
SUSPICIOUS_PATTERNS: tuple[SuspiciousPattern, ...] = (
    SuspiciousPattern(
        re.compile(r";\s*(DROP|DELETE|UPDATE|INSERT|ALTER|CREATE|TRUNCATE)", re.IGNORECASE),
        "Multiple statements detected",
    ),
    SuspiciousPattern(re.compile(r"WHERE\s+1\s*=\s*1", re.IGNORECASE), "Suspicious WHERE clause detected"),
    SuspiciousPattern(
        re.compile(r"WHERE\s+'1'\s*=\s*'1'", re.IGNORECASE), "Suspicious WHERE clause detected"
    ),
    SuspiciousPattern(re.compile(r"OR\s+1\s*=\s*1", re.IGNORECASE), "SQL injection pattern detected"),
    SuspiciousPattern(
        re.compile(r"INFORMATION_SCHEMA", re.IGNORECASE), "Access to INFORMATION_SCHEMA is not allowed"
    ),
    SuspiciousPattern(
        re.compile(r"FROM\s+MYSQL\.", re.IGNORECASE), "Access to MySQL system tables is not allowed"
    ),
    SuspiciousPattern(
        re.compile(r"FROM\s+PERFORMANCE_SCHEMA\.", re.IGNORECASE),
        "Access to performance schema is not allowed",
    ),
)
