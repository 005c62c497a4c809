"""Leaderboard reads, caching and change propagation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.cache import LeaderboardCache, leaderboard_key, public_leaderboard_key
from ..core.config import get_settings
from ..core.errors import NotFound
from ..core.events import LeaderboardBroker
from ..models import ClassPointsTotal, Classroom, PointsLedger, Student
from ..schemas import LeaderboardEntry, PublicClassInfo, PublicLeaderboard, StudentSummary
from ..utils.datetime import utcnow, window_start
from .ranking import Standing, build_leaderboard

logger = logging.getLogger(__name__)


def publish_class_change(
    class_id: UUID,
    *slugs: Optional[str],
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> None:
    """Drop cached leaderboards of a class and ping its live subscribers.

    Called after a commit. Failures are logged and swallowed: the committed
    ledger stays the source of truth and the cache TTL bounds staleness.
    """

    if cache is not None:
        keys = [leaderboard_key(class_id)] + [public_leaderboard_key(slug) for slug in slugs if slug]
        try:
            cache.delete(*keys)
        except Exception:
            logger.exception("leaderboard cache invalidation failed for class %s", class_id)
    if broker is not None:
        try:
            broker.publish(class_id)
        except Exception:
            logger.exception("leaderboard change notification failed for class %s", class_id)


def _cache_get(cache: Optional[LeaderboardCache], key: str):
    if cache is None:
        return None
    try:
        return cache.get(key)
    except Exception:
        logger.exception("leaderboard cache read failed for %s", key)
        return None


def _cache_generation(cache: Optional[LeaderboardCache], key: str) -> Optional[int]:
    if cache is None:
        return None
    try:
        return cache.generation(key)
    except Exception:
        logger.exception("leaderboard cache read failed for %s", key)
        return None


def _cache_set(cache: Optional[LeaderboardCache], key: str, value, generation: Optional[int]) -> None:
    if cache is None or generation is None:
        return
    try:
        if not cache.set(key, value, generation=generation):
            logger.debug("skipped caching %s: invalidated while computing", key)
    except Exception:
        logger.exception("leaderboard cache write failed for %s", key)


def load_standings(session: Session, class_id: UUID) -> Tuple[List[Standing], Dict[UUID, Student]]:
    """Snapshot every running total of a class together with its students."""

    stmt = (
        select(ClassPointsTotal, Student)
        .join(Student, Student.student_id == ClassPointsTotal.student_id)
        .where(ClassPointsTotal.class_id == class_id)
    )
    standings: List[Standing] = []
    students: Dict[UUID, Student] = {}
    for points_total, student in session.execute(stmt).all():
        standings.append(
            Standing(
                student_id=points_total.student_id,
                total=points_total.total,
                has_negative_history=points_total.has_negative_history,
                updated_at=points_total.updated_at,
            )
        )
        students[student.student_id] = student
    return standings, students


def recent_gains(
    session: Session,
    class_id: UUID,
    *,
    since: datetime,
    until: Optional[datetime] = None,
) -> Dict[UUID, int]:
    """Sum ledger deltas per student of a class inside ``[since, until)``."""

    conditions = [PointsLedger.class_id == class_id, PointsLedger.created_at >= since]
    if until is not None:
        conditions.append(PointsLedger.created_at < until)
    stmt = (
        select(PointsLedger.student_id, func.coalesce(func.sum(PointsLedger.delta), 0))
        .where(*conditions)
        .group_by(PointsLedger.student_id)
    )
    return {student_id: int(total) for student_id, total in session.execute(stmt).all()}


def compute_leaderboard(
    session: Session,
    class_id: UUID,
    *,
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
) -> List[LeaderboardEntry]:
    """Rank a class from storage, bypassing the cache."""

    days = window_days if window_days is not None else get_settings().badge_window_days
    standings, students = load_standings(session, class_id)
    gains = recent_gains(session, class_id, since=window_start(days, now or utcnow()))

    entries: List[LeaderboardEntry] = []
    for ranked in build_leaderboard(standings, gains):
        standing = ranked.standing
        entries.append(
            LeaderboardEntry(
                rank=ranked.rank,
                student_id=standing.student_id,
                student=StudentSummary.model_validate(students[standing.student_id]),
                total=standing.total,
                has_negative_history=standing.has_negative_history,
                recent_gain=ranked.recent_gain,
                badges=list(ranked.badges),
            )
        )
    return entries


def get_leaderboard(
    session: Session,
    *,
    class_id: UUID,
    cache: Optional[LeaderboardCache] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[LeaderboardEntry]:
    """Return the staff leaderboard of a class, served from cache when fresh."""

    if session.get(Classroom, class_id) is None:
        raise NotFound(f"Class {class_id} not found")

    key = leaderboard_key(class_id)
    generation = _cache_generation(cache, key)
    cached = _cache_get(cache, key)
    if cached is not None:
        entries = [LeaderboardEntry.model_validate(item) for item in cached]
    else:
        entries = compute_leaderboard(session, class_id)
        _cache_set(cache, key, [entry.model_dump(mode="json") for entry in entries], generation)

    if limit is None:
        return entries[offset:]
    return entries[offset : offset + limit]


def resolve_public_class(session: Session, slug: str) -> Classroom:
    """Return the public class behind ``slug``.

    Missing and private classes raise the same error so a private slug's
    existence is not revealed.
    """

    classroom = session.execute(select(Classroom).where(Classroom.public_slug == slug)).scalar_one_or_none()
    if classroom is None or not classroom.is_public:
        raise NotFound("Leaderboard not found")
    return classroom


def get_public_leaderboard(
    session: Session,
    *,
    slug: str,
    cache: Optional[LeaderboardCache] = None,
) -> PublicLeaderboard:
    """Return class metadata and leaderboard for a public slug."""

    key = public_leaderboard_key(slug)
    generation = _cache_generation(cache, key)
    cached = _cache_get(cache, key)
    if cached is not None:
        return PublicLeaderboard.model_validate(cached)

    classroom = resolve_public_class(session, slug)
    entries = compute_leaderboard(session, classroom.class_id)
    payload = PublicLeaderboard(
        classroom=PublicClassInfo(
            class_id=classroom.class_id,
            name=classroom.name,
            description=classroom.description,
            public_slug=classroom.public_slug,
            is_archived=classroom.is_archived,
            student_count=len(entries),
        ),
        leaderboard=entries,
    )
    _cache_set(cache, key, payload.model_dump(mode="json"), generation)
    return payload
