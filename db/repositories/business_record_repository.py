"""
Repository for owner business records.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.base import utc_now
from db.models.business_record import BusinessRecord


class BusinessRecordRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_owner(self, owner_id: uuid.UUID) -> BusinessRecord | None:
        stmt = select(BusinessRecord).where(BusinessRecord.owner_id == owner_id).with_for_update()
        return self._session.scalars(stmt).one_or_none()

    def get_or_create(self, owner_id: uuid.UUID) -> BusinessRecord:
        record = self.get_by_owner(owner_id)
        if record is None:
            record = BusinessRecord(owner_id=owner_id)
            self._session.add(record)
            self._session.flush()
        return record

    def update_fields(self, *, owner_id: uuid.UUID, fields: dict[str, Any]) -> BusinessRecord:
        """
        Overwrite the given columns on the owner's record, creating it on first use.

        Columns whose stored value already equals the new value are not touched,
        so re-applying the same fields produces no UPDATE.
        """

        record = self.get_or_create(owner_id)
        changed = False
        for column, value in fields.items():
            if not hasattr(BusinessRecord, column):
                raise ValueError(f"BusinessRecord has no column '{column}'.")
            if getattr(record, column) != value:
                setattr(record, column, value)
                changed = True

        if changed:
            record.last_imported_at = utc_now()
        self._session.flush()
        return record
