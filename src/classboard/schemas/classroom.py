"""Pydantic schemas for class and roster management."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..models import UserRole
from .student import StudentSummary


class UserSummary(BaseModel):
    """Staff member projection."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    name: str
    email: str
    role: UserRole


class ClassCreate(BaseModel):
    """Request body for creating a class."""

    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)


class ClassUpdate(BaseModel):
    """Partial class update."""

    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    public_slug: Optional[str] = Field(None, min_length=3, max_length=80, pattern=r"^[a-z0-9-]+$")
    is_public: Optional[bool] = None
    is_archived: Optional[bool] = None


class ClassStats(BaseModel):
    """Aggregated points statistics for a class."""

    student_count: int
    average_points: float
    total_points_distributed: int


class ClassRead(BaseModel):
    """Class details including owner and assistants."""

    model_config = ConfigDict(from_attributes=True)

    class_id: UUID
    name: str
    description: Optional[str]
    public_slug: str
    is_public: bool
    is_archived: bool
    owner: UserSummary
    assistants: List[UserSummary]
    created_at: datetime


class ClassWithStats(ClassRead):
    """Class listing row."""

    stats: ClassStats


class AssistantAdd(BaseModel):
    """Assign an existing staff user as class assistant."""

    user_id: UUID


class EnrollStudent(BaseModel):
    """Request body for enrolling one student."""

    student_name: str = Field(..., min_length=1, max_length=120)
    student_email: EmailStr


class EnrollmentRead(BaseModel):
    """Result of enrolling a student."""

    model_config = ConfigDict(from_attributes=True)

    enrollment_id: UUID
    class_id: UUID
    student: StudentSummary
    joined_at: datetime


class ImportRow(BaseModel):
    """One already-parsed row of a roster import."""

    nim: Optional[str] = Field(None, min_length=1, max_length=40)
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr


class ImportStudents(BaseModel):
    """Roster import payload."""

    students: List[ImportRow]


class RemoveStudents(BaseModel):
    """Bulk removal payload."""

    student_ids: List[UUID]
