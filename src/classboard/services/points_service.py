"""Points engine: the only write path into the ledger and running totals.

Every adjustment appends a ledger row and moves the matching
``ClassPointsTotal`` through a single atomic upsert in the same transaction.
The session is committed here so that cache invalidation and live
notifications are only ever issued for committed data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.cache import LeaderboardCache
from ..core.errors import BulkAdjustmentFailed, NotEnrolled, NotFound, ValidationFailure
from ..core.events import LeaderboardBroker
from ..models import ClassPointsTotal, Classroom, Enrollment, PointsLedger
from ..utils.datetime import utcnow
from .leaderboard_service import publish_class_change

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class Adjustment:
    """Result of one applied adjustment."""

    ledger_entry: PointsLedger
    points_total: ClassPointsTotal


def _validate(delta: object, reason: Optional[str]) -> str:
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationFailure("delta must be an integer")
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationFailure("reason must not be empty")
    return cleaned


def _get_class(session: Session, class_id: UUID) -> Classroom:
    classroom = session.get(Classroom, class_id)
    if classroom is None:
        raise NotFound(f"Class {class_id} not found")
    return classroom


def _locked_enrollments(session: Session, class_id: UUID, student_ids: Iterable[UUID]) -> set:
    # Roster removal deletes enrollments first, so it waits on these locks.
    stmt = (
        select(Enrollment.student_id)
        .where(Enrollment.class_id == class_id, Enrollment.student_id.in_(list(student_ids)))
        .with_for_update()
    )
    return set(session.execute(stmt).scalars().all())


def _upsert(session: Session):
    dialect = session.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"atomic points upsert is not available for dialect {dialect!r}")
    return insert


def _apply_delta(
    session: Session,
    *,
    class_id: UUID,
    student_id: UUID,
    delta: int,
    now: datetime,
) -> ClassPointsTotal:
    """Move the running total by ``delta`` with one INSERT .. ON CONFLICT statement."""

    insert = _upsert(session)
    table = ClassPointsTotal.__table__
    conflict_target = [table.c.class_id, table.c.student_id]

    if delta == 0:
        # audit-only adjustment: make sure the row exists but leave it untouched
        stmt = (
            insert(ClassPointsTotal)
            .values(class_id=class_id, student_id=student_id, total=0, has_negative_history=False, updated_at=now)
            .on_conflict_do_nothing(index_elements=conflict_target)
        )
        session.execute(stmt)
        lookup = select(ClassPointsTotal).where(
            ClassPointsTotal.class_id == class_id,
            ClassPointsTotal.student_id == student_id,
        )
        return session.execute(lookup, execution_options={"populate_existing": True}).scalar_one()

    negative = delta < 0
    updates = {"total": table.c.total + delta, "updated_at": now}
    if negative:
        updates["has_negative_history"] = True

    stmt = (
        insert(ClassPointsTotal)
        .values(
            class_id=class_id,
            student_id=student_id,
            total=delta,
            has_negative_history=negative,
            updated_at=now,
        )
        .on_conflict_do_update(index_elements=conflict_target, set_=updates)
        .returning(ClassPointsTotal)
    )
    return session.scalars(stmt, execution_options={"populate_existing": True}).one()


def _record(
    session: Session,
    *,
    class_id: UUID,
    student_id: UUID,
    delta: int,
    actor_id: UUID,
    reason: str,
    now: datetime,
) -> Adjustment:
    entry = PointsLedger(
        class_id=class_id,
        student_id=student_id,
        delta=delta,
        reason=reason,
        created_by_user_id=actor_id,
        created_at=now,
    )
    session.add(entry)
    session.flush()
    points_total = _apply_delta(session, class_id=class_id, student_id=student_id, delta=delta, now=now)
    return Adjustment(ledger_entry=entry, points_total=points_total)


def adjust_points(
    session: Session,
    *,
    class_id: UUID,
    student_id: UUID,
    delta: int,
    actor_id: UUID,
    reason: str,
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> Adjustment:
    """Apply one adjustment, commit it, then invalidate and notify."""

    reason = _validate(delta, reason)
    slug = _get_class(session, class_id).public_slug
    if student_id not in _locked_enrollments(session, class_id, [student_id]):
        raise NotEnrolled(class_id, student_id)

    try:
        adjustment = _record(
            session,
            class_id=class_id,
            student_id=student_id,
            delta=delta,
            actor_id=actor_id,
            reason=reason,
            now=utcnow(),
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info("points adjusted class=%s student=%s delta=%d by=%s", class_id, student_id, delta, actor_id)
    publish_class_change(class_id, slug, cache=cache, broker=broker)
    return adjustment


def bulk_adjust_points(
    session: Session,
    *,
    class_id: UUID,
    student_ids: Sequence[UUID],
    delta: int,
    actor_id: UUID,
    reason: str,
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> List[Adjustment]:
    """Apply the same adjustment to several students as one all-or-nothing batch.

    Every student is checked for enrollment before anything is written; the
    first unenrolled id aborts the call with ``NotEnrolled``. A storage error
    part-way through rolls the whole batch back and is reported as
    ``BulkAdjustmentFailed`` naming the student being written at the time.
    """

    ordered = list(dict.fromkeys(student_ids))
    if not ordered:
        return []

    reason = _validate(delta, reason)
    slug = _get_class(session, class_id).public_slug
    enrolled = _locked_enrollments(session, class_id, ordered)
    for student_id in ordered:
        if student_id not in enrolled:
            raise NotEnrolled(class_id, student_id)

    now = utcnow()
    results: List[Adjustment] = []
    current: Optional[UUID] = None
    try:
        for current in ordered:
            results.append(
                _record(
                    session,
                    class_id=class_id,
                    student_id=current,
                    delta=delta,
                    actor_id=actor_id,
                    reason=reason,
                    now=now,
                )
            )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("bulk adjustment aborted class=%s student=%s", class_id, current)
        raise BulkAdjustmentFailed(current, exc.__class__.__name__, status_code=500) from exc

    logger.info(
        "points bulk-adjusted class=%s students=%d delta=%d by=%s", class_id, len(results), delta, actor_id
    )
    publish_class_change(class_id, slug, cache=cache, broker=broker)
    return results


def get_history(
    session: Session,
    *,
    class_id: UUID,
    student_id: UUID,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[PointsLedger]:
    """Return ledger entries for a student in a class, newest first."""

    _get_class(session, class_id)
    stmt = (
        select(PointsLedger)
        .where(PointsLedger.class_id == class_id, PointsLedger.student_id == student_id)
        .order_by(PointsLedger.created_at.desc(), PointsLedger.ledger_entry_id.desc())
        .offset(offset)
        .limit(limit)
    )
    return session.execute(stmt).scalars().all()


def get_public_history(
    session: Session,
    *,
    slug: str,
    student_id: UUID,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[PointsLedger]:
    """History of an enrolled student in a public class.

    Unknown slugs, private classes and students outside the class all
    raise ``NotFound``.
    """

    classroom = session.execute(select(Classroom).where(Classroom.public_slug == slug)).scalar_one_or_none()
    if classroom is None or not classroom.is_public:
        raise NotFound("Leaderboard not found")
    enrolled = session.execute(
        select(Enrollment.enrollment_id).where(
            Enrollment.class_id == classroom.class_id, Enrollment.student_id == student_id
        )
    ).first()
    if enrolled is None:
        raise NotFound("Student not found")
    return get_history(session, class_id=classroom.class_id, student_id=student_id, limit=limit, offset=offset)
