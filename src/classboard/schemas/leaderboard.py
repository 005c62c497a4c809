"""Leaderboard response schemas."""

import enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .student import StudentSummary


class Badge(str, enum.Enum):
    """Recomputed-per-read annotations on leaderboard entries."""

    TOP_1 = "TOP_1"
    MOST_IMPROVED = "MOST_IMPROVED"
    BIGGEST_CLIMBER = "BIGGEST_CLIMBER"


class LeaderboardEntry(BaseModel):
    """Ranked, badge-decorated leaderboard row."""

    rank: int = Field(..., ge=1)
    student_id: UUID
    student: StudentSummary
    total: int
    has_negative_history: bool
    recent_gain: int = Field(0, description="Sum of deltas inside the trailing badge window.")
    badges: List[Badge] = Field(default_factory=list)


class PublicClassInfo(BaseModel):
    """Class metadata exposed on public leaderboards."""

    class_id: UUID
    name: str
    description: Optional[str] = None
    public_slug: str
    is_archived: bool
    student_count: int


class PublicLeaderboard(BaseModel):
    """Public leaderboard payload: class metadata plus entries."""

    classroom: PublicClassInfo
    leaderboard: List[LeaderboardEntry]
