"""Execution of stored report queries.

Validated SQL is never run as-is: it is wrapped as a derived table,
``SELECT `t`.* FROM (<sql>) AS `t```, so the outer query controls ordering
and row limits.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Any, Dict, Iterator, Optional

import pandas as pd

# Import ``core`` in a way that works whether the project is installed or run
# directly from the repository root.
try:
    from core.config import AppConfig
except ImportError:  # pragma: no cover - fallback for running from source
    from ...core.config import AppConfig

from ..security import SqlStatementValidator, count_statement_separators, validate_sql
from .errors import ReportExecutionError

logger = logging.getLogger(__name__)

MAX_ERROR_QUERY_LENGTH = 200

_SQLSTATE_RE = re.compile(r"SQLSTATE\[[^\]]+\]:\s*(.+?)(?:,\s*query was:\s*(.+))?$", re.DOTALL)
_ERROR_CODE_RE = re.compile(r":\s*(\d+\s+.+?)(?:,\s*query was:\s*(.+))?$", re.DOTALL)
_QUERY_WAS_RE = re.compile(r"query was:\s*(.+)$", re.DOTALL)
_QUERY_TAIL_RE = re.compile(r",\s*query was:.*$", re.DOTALL)
_SQLSTATE_PREFIX_RE = re.compile(r"^SQLSTATE\[[^\]]+\]:\s*")
_TRAILING_SEPARATOR_RE = re.compile(r";+(\s*(?:--[^\n]*|/\*.*?\*/))\s*$", re.DOTALL)


def _query_from_previous(exc: BaseException) -> str:
    previous = exc.__cause__ or exc.__context__
    if previous is None:
        return ""
    match = _QUERY_WAS_RE.search(str(previous))
    return match.group(1).strip() if match else ""


def _with_query(message: str, query: str) -> str:
    if not query:
        return message
    if len(query) > MAX_ERROR_QUERY_LENGTH:
        query = query[:MAX_ERROR_QUERY_LENGTH] + "..."
    return f"{message}, query was: {query}"


def extract_sql_error_message(exc: BaseException) -> str:
    """Turn a driver exception into a message fit for the end user.

    ``SQLSTATE[...]:`` prefixes are dropped and an embedded ``query was:``
    tail is kept but truncated.
    """

    message = str(exc)

    match = _SQLSTATE_RE.search(message)
    if match is None:
        match = _ERROR_CODE_RE.search(message)
    if match is not None:
        query = (match.group(2) or "").strip() or _query_from_previous(exc)
        return _with_query(match.group(1).strip(), query)

    message = _QUERY_TAIL_RE.sub("", message).strip()
    return _SQLSTATE_PREFIX_RE.sub("", message)


def format_sql(sql: str) -> str:
    """Strip surrounding whitespace and statement separators from *sql*.

    A separator followed only by a trailing comment is dropped as well; the
    comment itself is kept.
    """

    sql = sql.strip().strip(";").strip()
    match = _TRAILING_SEPARATOR_RE.search(sql)
    # Only a separator outside quoted literals counts.
    if match and count_statement_separators(sql[: match.start() + 1]) > count_statement_separators(
        sql[: match.start()]
    ):
        sql = (sql[: match.start()] + match.group(1)).rstrip()
    return sql


def quote_identifier(identifier: str) -> str:
    """Backtick-quote a column alias taken from user-defined SQL."""

    identifier = identifier.strip("`")
    return "`" + identifier.replace("`", "``") + "`"


def build_wrapped_query(
    sql: str,
    limit: Optional[int] = None,
    order_by: Optional[str] = None,
    direction: str = "DESC",
) -> str:
    """Wrap *sql* as a derived table with optional ordering and row limit."""

    direction = direction.upper()
    if direction not in {"ASC", "DESC"}:
        raise ValueError("direction must be 'ASC' or 'DESC'")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
        raise ValueError("limit must be a positive integer")

    # The closing parenthesis goes on its own line so a trailing line comment
    # in *sql* cannot swallow it.
    query = f"SELECT `t`.* FROM ({format_sql(sql)}\n) AS `t`"
    if order_by:
        query += f" ORDER BY {quote_identifier(order_by)} {direction}"
    if limit is not None:
        query += f" LIMIT {limit}"
    return query


class ReportQueryExecutor:
    """Runs validated report SQL against a DB-API connection."""

    # Driver errors translated into ReportExecutionError.
    db_errors: tuple[type[BaseException], ...] = (sqlite3.Error, pd.errors.DatabaseError)

    def __init__(
        self,
        conn: Any,
        validator: SqlStatementValidator | None = None,
        revalidate: bool = True,
        default_limit: Optional[int] = None,
    ) -> None:
        self.conn = conn
        self.validator = validator or SqlStatementValidator()
        self.revalidate = revalidate
        self.default_limit = default_limit

    @classmethod
    def from_config(cls, conn: Any, config: AppConfig, revalidate: bool = True) -> "ReportQueryExecutor":
        """Build an executor using the row limit and preview length from *config*."""

        return cls(
            conn,
            validator=SqlStatementValidator(config.preview_length),
            revalidate=revalidate,
            default_limit=config.default_row_limit,
        )

    def _prepare(self, sql: str, limit: Optional[int], order_by: Optional[str], direction: str) -> str:
        if self.revalidate:
            validate_sql(sql, self.validator)
        return build_wrapped_query(
            sql,
            limit=limit if limit is not None else self.default_limit,
            order_by=order_by,
            direction=direction,
        )

    def check_execution(self, sql: str) -> None:
        """Run *sql* with ``LIMIT 1`` to surface missing tables or columns."""

        query = self._prepare(sql, 1, None, "DESC")
        cursor = self.conn.cursor()
        try:
            cursor.execute(query)
            cursor.fetchall()
        except self.db_errors as exc:
            logger.info("Report query failed trial execution: %s", exc)
            raise ReportExecutionError(extract_sql_error_message(exc)) from exc
        finally:
            cursor.close()

    def iter_rows(
        self,
        sql: str,
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        direction: str = "DESC",
        batch_size: int = 500,
    ) -> Iterator[Dict[str, Any]]:
        """Yield result rows as dictionaries, fetching ``batch_size`` at a time."""

        query = self._prepare(sql, limit, order_by, direction)
        cursor = self.conn.cursor()
        try:
            try:
                cursor.execute(query)
            except self.db_errors as exc:
                raise ReportExecutionError(extract_sql_error_message(exc)) from exc
            columns = [col[0] for col in cursor.description or ()]
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    break
                for row in rows:
                    yield dict(zip(columns, row))
        finally:
            cursor.close()

    def fetch_dataframe(
        self,
        sql: str,
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        direction: str = "DESC",
    ) -> pd.DataFrame:
        """Return the report result as a :class:`pandas.DataFrame`."""

        query = self._prepare(sql, limit, order_by, direction)
        try:
            return pd.read_sql_query(query, self.conn)
        except self.db_errors as exc:
            raise ReportExecutionError(extract_sql_error_message(exc)) from exc
