"""Pydantic schemas for students and their progress."""

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StudentSummary(BaseModel):
    """Lightweight projection of student details."""

    model_config = ConfigDict(from_attributes=True)

    student_id: UUID
    nim: str
    name: str
    email: Optional[str] = None


class ClassProgress(BaseModel):
    """A student's standing and momentum in one class."""

    class_id: UUID
    class_name: str
    is_archived: bool
    rank: int = Field(..., ge=1)
    total_points: int
    level: int = Field(..., ge=1)
    next_level_threshold: int
    progress_percent: float = Field(..., ge=0, le=100)
    recent_gain: int
    trend: Literal["up", "down", "neutral"]


class StudentProgress(BaseModel):
    """Per-class progress report for a student."""

    student: StudentSummary
    classes: List[ClassProgress]
