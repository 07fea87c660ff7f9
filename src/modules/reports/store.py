from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Import ``core`` in a way that works whether the project is installed or run
# directly from the repository root.
try:
    from core.config import AppConfig
    from core.storage import get_connection
except ImportError:  # pragma: no cover - fallback for running from source
    from ...core.config import AppConfig
    from ...core.storage import get_connection

from ..security import SQLSecurityError, SqlStatementValidator, validate_sql
from .errors import QueryTooLargeError, ReportExecutionError, ReportNotFoundError, ReportsDisabledError
from .executor import ReportQueryExecutor, format_sql
from .models import ReportDefinition

logger = logging.getLogger(__name__)

_COLUMNS = "report_id, report_name, query_definition, created_at, updated_at"


class ReportStore:
    """CRUD for report definitions; every save passes the SQL validator first."""

    def __init__(
        self,
        conn: sqlite3.Connection | None = None,
        validator: SqlStatementValidator | None = None,
        executor: ReportQueryExecutor | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.conn = conn or get_connection()
        self.config = config or AppConfig()
        self.validator = validator or SqlStatementValidator(self.config.preview_length)
        self.executor = executor

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def save(self, report: ReportDefinition) -> ReportDefinition:
        """Validate and persist *report*, inserting or updating by ``report_id``."""

        if not self.config.reports_enabled:
            raise ReportsDisabledError("Custom reports are disabled")

        sql = report.query_definition
        if len(sql) > self.config.max_query_length:
            self._audit("report_rejected", {"report_name": report.report_name, "reason": "too_large"})
            raise QueryTooLargeError(
                f"SQL query exceeds the maximum length of {self.config.max_query_length} characters."
            )

        try:
            validate_sql(sql, self.validator)
        except SQLSecurityError as exc:
            self._audit(
                "report_rejected",
                {"report_name": report.report_name, "reason": exc.kind.value, "message": str(exc)},
            )
            raise

        if self.executor is not None and self.config.check_execution_on_save:
            try:
                self.executor.check_execution(sql)
            except ReportExecutionError as exc:
                self._audit(
                    "report_rejected",
                    {"report_name": report.report_name, "reason": "execution", "message": str(exc)},
                )
                raise

        report.query_definition = format_sql(sql)
        now = datetime.now(timezone.utc)
        cur = self.conn.cursor()
        if report.report_id is None:
            cur.execute(
                """
                INSERT INTO report_definitions (report_name, query_definition, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (report.report_name, report.query_definition, now.isoformat(), now.isoformat()),
            )
            report.report_id = cur.lastrowid
            report.created_at = now
        else:
            cur.execute(
                """
                UPDATE report_definitions
                SET report_name=?, query_definition=?, updated_at=?
                WHERE report_id=?
                """,
                (report.report_name, report.query_definition, now.isoformat(), report.report_id),
            )
            if cur.rowcount == 0:
                self.conn.rollback()
                raise ReportNotFoundError(f'Report with id "{report.report_id}" does not exist.')
        report.updated_at = now
        self.conn.commit()
        self._audit("report_saved", {"report_id": report.report_id, "report_name": report.report_name})
        logger.info("Saved report %s (%s)", report.report_id, report.report_name)
        return report

    def get(self, report_id: int) -> ReportDefinition:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_COLUMNS} FROM report_definitions WHERE report_id=?", (report_id,))
        row = cur.fetchone()
        if not row:
            raise ReportNotFoundError(f'Report with id "{report_id}" does not exist.')
        return self._to_model(row)

    def list(self) -> List[ReportDefinition]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_COLUMNS} FROM report_definitions ORDER BY report_id")
        return [self._to_model(row) for row in cur.fetchall()]

    def delete(self, report_id: int) -> None:
        cur = self.conn.cursor()
        cur.execute("DELETE FROM report_definitions WHERE report_id=?", (report_id,))
        if cur.rowcount == 0:
            raise ReportNotFoundError(f'Report with id "{report_id}" does not exist.')
        self.conn.commit()
        self._audit("report_deleted", {"report_id": report_id})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _to_model(row: tuple) -> ReportDefinition:
        report_id, name, sql, created_at, updated_at = row
        return ReportDefinition(
            report_id=report_id,
            report_name=name,
            query_definition=sql,
            created_at=datetime.fromisoformat(created_at),
            updated_at=datetime.fromisoformat(updated_at),
        )

    def _audit(self, action: str, details: Optional[Dict[str, Any]] = None) -> None:
        cur = self.conn.cursor()
        cur.execute(
            "INSERT INTO audit (action, created_at, details) VALUES (?, ?, ?)",
            (action, datetime.now(timezone.utc).isoformat(), json.dumps(details or {})),
        )
        self.conn.commit()
