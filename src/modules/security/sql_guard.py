"""Read-only SQL validator for stored report queries.

The validator is a textual allow-list: it never parses SQL into a tree. A
query is accepted only when, after comments are stripped and whitespace is
collapsed, it starts with ``SELECT`` or ``WITH``, contains none of the
forbidden keyword phrases or suspicious patterns from
:mod:`modules.security.rules`, has at most one statement separator outside of
quoted literals and carries no comment markers left over from stripping.

Checks run in a fixed order and the first failure wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .rules import ALLOWED_LEADING_KEYWORDS, DANGEROUS_KEYWORDS, SUSPICIOUS_PATTERNS

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

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LENGTH = 100

_LINE_COMMENT_RE = re.compile(r"--.*$", re.MULTILINE)
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")
_LEADING_KEYWORD_RE = re.compile(
    r"^(?:" + "|".join(re.escape(kw) for kw in ALLOWED_LEADING_KEYWORDS) + r")\b"
)
_RESIDUAL_COMMENT_RE = re.compile(r"/\*|\*/|--")
_QUOTE_CHARS = frozenset("'\"`")


class ViolationKind(Enum):
    """Categories of rejected queries."""

    EMPTY_QUERY = "EmptyQuery"
    FORBIDDEN_KEYWORD = "ForbiddenKeyword"
    MUST_START_WITH_SELECT_OR_WITH = "MustStartWithSelectOrWith"
    SUSPICIOUS_PATTERN = "SuspiciousPattern"
    MULTIPLE_STATEMENTS = "MultipleStatements"
    RESIDUAL_COMMENT = "ResidualComment"


@dataclass(frozen=True, slots=True)
class ValidationError:
    """Why a query was rejected.

    ``detail`` holds the matched keyword, the matched pattern source or the
    separator count, depending on ``kind``.
    """

    kind: ViolationKind
    message: str
    detail: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of a single validation call."""

    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok


class SQLSecurityError(ValueError):
    """Raised by :func:`validate_sql` when a query violates the read-only policy."""

    def __init__(self, error: ValidationError) -> None:
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self) -> ViolationKind:
        return self.error.kind


def normalize_query(query: str) -> str:
    """Strip comments, collapse whitespace and upper-case *query*.

    Block comments are removed in a single non-greedy pass, so nested
    comments can leave a marker behind.
    """

    text = _LINE_COMMENT_RE.sub("", query)
    text = _BLOCK_COMMENT_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip().upper()


def count_statement_separators(query: str) -> int:
    """Count semicolons in *query* that are outside quoted spans.

    Single quotes, double quotes and backticks open a span; the same
    character closes it unless preceded by a backslash.
    """

    quote: Optional[str] = None
    count = 0
    for index, char in enumerate(query):
        if quote is None:
            if char in _QUOTE_CHARS:
                quote = char
            elif char == ";":
                count += 1
        elif char == quote and query[index - 1] != "\\":
            quote = None
    return count


class SqlStatementValidator:
    """Stateless validator deciding whether SQL text is a single read-only query."""

    def __init__(self, preview_length: int = DEFAULT_PREVIEW_LENGTH) -> None:
        self.preview_length = preview_length

    def validate(self, query: str) -> ValidationResult:
        """Return a :class:`ValidationResult` for *query*."""

        if not isinstance(query, str) or not query.strip():
            return self._reject(ViolationKind.EMPTY_QUERY, "SQL query cannot be empty.")

        normalized = normalize_query(query)
        error = (
            self._check_dangerous_keywords(normalized)
            or self._check_leading_keyword(normalized)
            or self._check_suspicious_patterns(normalized)
            or self._check_statement_count(query)
            or self._check_residual_comments(normalized)
        )
        if error is not None:
            return ValidationResult(error)
        return ValidationResult()

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------
    def _check_dangerous_keywords(self, normalized: str) -> Optional[ValidationError]:
        for rule in DANGEROUS_KEYWORDS:
            if rule.pattern.search(normalized):
                logger.warning(
                    "Blocked dangerous SQL keyword %r: %s",
                    rule.keyword,
                    self._preview(normalized),
                )
                return ValidationError(
                    ViolationKind.FORBIDDEN_KEYWORD,
                    f"SQL query contains prohibited operation: {rule.keyword}. "
                    "Only SELECT queries are allowed.",
                    rule.keyword,
                )
        return None

    def _check_leading_keyword(self, normalized: str) -> Optional[ValidationError]:
        if _LEADING_KEYWORD_RE.match(normalized):
            return None
        logger.warning("SQL query does not start with an allowed keyword: %s", self._preview(normalized))
        return ValidationError(
            ViolationKind.MUST_START_WITH_SELECT_OR_WITH,
            "SQL query must start with SELECT or WITH. Only read-only queries are allowed.",
        )

    def _check_suspicious_patterns(self, normalized: str) -> Optional[ValidationError]:
        for rule in SUSPICIOUS_PATTERNS:
            if rule.pattern.search(normalized):
                logger.warning(
                    "Suspicious SQL pattern %r (%s): %s",
                    rule.pattern.pattern,
                    rule.message,
                    self._preview(normalized),
                )
                return ValidationError(
                    ViolationKind.SUSPICIOUS_PATTERN,
                    f"SQL query contains suspicious pattern: {rule.message}",
                    rule.pattern.pattern,
                )
        return None

    def _check_statement_count(self, query: str) -> Optional[ValidationError]:
        # One trailing separator is tolerated; callers trim it before storage.
        count = count_statement_separators(query)
        if count <= 1:
            return None
        logger.warning("Multiple SQL statements detected (%d separators)", count)
        return ValidationError(
            ViolationKind.MULTIPLE_STATEMENTS,
            "Multiple SQL statements detected. Only single SELECT queries are allowed.",
            str(count),
        )

    def _check_residual_comments(self, normalized: str) -> Optional[ValidationError]:
        match = _RESIDUAL_COMMENT_RE.search(normalized)
        if match is None:
            return None
        logger.warning("Comment marker %r left after normalization: %s", match.group(0), self._preview(normalized))
        return ValidationError(
            ViolationKind.RESIDUAL_COMMENT,
            "SQL query contains prohibited comment patterns.",
            match.group(0),
        )

    def _reject(self, kind: ViolationKind, message: str) -> ValidationResult:
        logger.warning("Rejected SQL query: %s", message)
        return ValidationResult(ValidationError(kind, message))

    def _preview(self, text: str) -> str:
        return text[: self.preview_length]


_default_validator = SqlStatementValidator()


def check_sql(query: str) -> ValidationResult:
    """Validate *query* with the shared default validator."""

    return _default_validator.validate(query)


def validate_sql(query: str, validator: SqlStatementValidator | None = None) -> None:
    """Validate *query* and raise :class:`SQLSecurityError` if it is rejected."""

    result = (validator or _default_validator).validate(query)
    if result.error is not None:
        raise SQLSecurityError(result.error)
