"""Per-student progress across every class they are enrolled in."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import NotFound
from ..models import Classroom, Enrollment, PointsLedger, Student
from ..schemas import ClassProgress, StudentProgress, StudentSummary
from ..utils.datetime import utcnow
from .leaderboard_service import load_standings
from .ranking import rank_of

LEVEL_SIZE = 1000


def level_for(total: int) -> int:
    """Levels start at 1 and advance every ``LEVEL_SIZE`` points; debt stays at level 1."""

    return max(total, 0) // LEVEL_SIZE + 1


def progress_percent(total: int) -> float:
    return (max(total, 0) % LEVEL_SIZE) / (LEVEL_SIZE / 100)


def trend_for(recent: int, previous: int) -> str:
    if recent > previous:
        return "up"
    if recent < previous:
        return "down"
    return "neutral"


def _window_sum(
    session: Session,
    *,
    class_id: UUID,
    student_id: UUID,
    since: datetime,
    until: Optional[datetime] = None,
) -> int:
    conditions = [
        PointsLedger.class_id == class_id,
        PointsLedger.student_id == student_id,
        PointsLedger.created_at >= since,
    ]
    if until is not None:
        conditions.append(PointsLedger.created_at < until)
    stmt = select(func.coalesce(func.sum(PointsLedger.delta), 0)).where(*conditions)
    return int(session.execute(stmt).scalar_one())


def get_student_progress(
    session: Session,
    *,
    student_id: UUID,
    now: Optional[datetime] = None,
) -> StudentProgress:
    """Report rank, level and week-over-week trend for each class of a student."""

    student = session.get(Student, student_id)
    if student is None:
        raise NotFound(f"Student {student_id} not found")

    now = now or utcnow()
    window = timedelta(days=get_settings().badge_window_days)
    recent_start = now - window
    previous_start = now - 2 * window

    stmt = (
        select(Classroom)
        .join(Enrollment, Enrollment.class_id == Classroom.class_id)
        .where(Enrollment.student_id == student_id)
        .order_by(Enrollment.joined_at.asc())
    )
    classes: List[ClassProgress] = []
    for classroom in session.execute(stmt).unique().scalars().all():
        standings, _ = load_standings(session, classroom.class_id)
        own = next((s for s in standings if s.student_id == student_id), None)
        total = own.total if own is not None else 0
        rank = rank_of(standings, student_id) or len(standings) + 1

        recent = _window_sum(session, class_id=classroom.class_id, student_id=student_id, since=recent_start)
        previous = _window_sum(
            session,
            class_id=classroom.class_id,
            student_id=student_id,
            since=previous_start,
            until=recent_start,
        )
        level = level_for(total)
        classes.append(
            ClassProgress(
                class_id=classroom.class_id,
                class_name=classroom.name,
                is_archived=classroom.is_archived,
                rank=rank,
                total_points=total,
                level=level,
                next_level_threshold=level * LEVEL_SIZE,
                progress_percent=progress_percent(total),
                recent_gain=recent,
                trend=trend_for(recent, previous),
            )
        )

    return StudentProgress(student=StudentSummary.model_validate(student), classes=classes)
