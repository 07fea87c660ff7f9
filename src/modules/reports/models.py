from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator


class ReportDefinition(BaseModel):
    """A named, stored report query."""

    report_id: int | None = None
    report_name: str
    query_definition: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("report_name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("report_name must not be blank")
        return v
