"""
models/status.py — Pydantic models for the collector bookkeeping tables.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel

from ethval_shared.constants import LogType, RunStatusName

# DB column limit on last_error / last_warning / message
MAX_MESSAGE_CHARS = 2000


class RunStatus(BaseModel):
    """
    Matches a data_collection_status row.

    One row per metric, pre-seeded by the schema; the collector only
    ever updates it.
    """

    dataset_name: str
    status: RunStatusName = "pending"
    record_count: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    last_error: str | None = None
    last_warning: str | None = None
    # NULL until the first run touches the row
    last_run_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "RunStatus":
        return cls(**{k: v for k, v in row.items() if k in cls.model_fields})

    def to_update_dict(self) -> dict[str, Any]:
        """
        Columns for the PATCH.

        last_error and last_warning are always sent so a clean run clears
        what an earlier failed or estimated run left behind. Unset counts and
        date bounds are left untouched in the DB.
        """
        now = datetime.now(timezone.utc).isoformat()
        update: dict[str, Any] = {
            "status": self.status,
            "last_run_at": (self.last_run_at.isoformat() if self.last_run_at else now),
            "updated_at": now,
            "last_error": self.last_error[:MAX_MESSAGE_CHARS] if self.last_error else None,
            "last_warning": self.last_warning[:MAX_MESSAGE_CHARS] if self.last_warning else None,
        }
        if self.record_count is not None:
            update["record_count"] = self.record_count
        if self.date_from is not None:
            update["date_from"] = self.date_from.isoformat()
        if self.date_to is not None:
            update["date_to"] = self.date_to.isoformat()
        return update


class CollectionLogEntry(BaseModel):
    """Matches a data_collection_logs row (append-only)."""

    dataset_name: str
    log_type: LogType
    message: str
    details: dict[str, Any] | None = None

    def to_insert_dict(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "dataset_name": self.dataset_name,
            "log_type": self.log_type,
            "message": self.message[:MAX_MESSAGE_CHARS],
        }
        if self.details is not None:
            row["details"] = self.details
        return row
