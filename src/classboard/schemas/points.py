"""Pydantic schemas for point adjustments and the ledger."""

from datetime import datetime
from typing import Annotated, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StringConstraints

Reason = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]


class PointsAdjust(BaseModel):
    """Request body for adjusting one student's points."""

    student_id: UUID
    delta: StrictInt = Field(..., description="Signed number of points to add or deduct.")
    reason: Reason = Field(..., description="Audit justification shown in the history.")


class PointsBulkAdjust(BaseModel):
    """Request body for applying one adjustment to several students."""

    student_ids: List[UUID] = Field(..., description="Empty lists are accepted and change nothing.")
    delta: StrictInt
    reason: Reason


class LedgerEntryRead(BaseModel):
    """One immutable ledger record."""

    model_config = ConfigDict(from_attributes=True)

    ledger_entry_id: UUID
    class_id: UUID
    student_id: UUID
    delta: int
    reason: str
    created_by_user_id: UUID
    created_at: datetime


class PointsTotalRead(BaseModel):
    """Running total of a student in a class."""

    model_config = ConfigDict(from_attributes=True)

    class_id: UUID
    student_id: UUID
    total: int
    has_negative_history: bool
    updated_at: datetime


class AdjustmentRead(BaseModel):
    """Outcome of one adjustment: the ledger record and the updated total."""

    ledger_entry: LedgerEntryRead
    points_total: PointsTotalRead
