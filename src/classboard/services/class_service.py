"""Class and roster management.

Roster changes create or delete running totals alongside enrollments so that
every enrolled student has exactly one ``ClassPointsTotal`` row.
"""

from __future__ import annotations

import logging
import re
import secrets
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.cache import LeaderboardCache
from ..core.errors import Conflict, NotFound
from ..core.events import LeaderboardBroker
from ..models import ClassPointsTotal, Classroom, Enrollment, PointsLedger, Student, User, UserRole, class_assistants
from ..schemas import ClassStats, ImportRow
from .leaderboard_service import publish_class_change

logger = logging.getLogger(__name__)

_SLUG_INVALID = re.compile(r"[^a-z0-9]")


def slugify(name: str, suffix: Optional[str] = None) -> str:
    """Build a public slug ``<name>-<6 hex chars>``."""

    base = _SLUG_INVALID.sub("-", name.lower())
    return f"{base}-{suffix or secrets.token_hex(3)}"


def _generate_nim(session: Session) -> str:
    while True:
        nim = secrets.token_hex(4)
        if session.execute(select(Student.student_id).where(Student.nim == nim)).first() is None:
            return nim


def _commit(session: Session, conflict_detail: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise Conflict(conflict_detail) from exc


def get_class_for_actor(session: Session, class_id: UUID, actor: User) -> Classroom:
    """Load a class the actor may manage.

    Classes the actor has no role in are reported as missing.
    """

    classroom = session.get(Classroom, class_id)
    if classroom is None:
        raise NotFound(f"Class {class_id} not found")
    if actor.role != UserRole.SUPERADMIN and not classroom.is_staff(actor):
        raise NotFound(f"Class {class_id} not found")
    return classroom


def create_class(session: Session, *, name: str, description: Optional[str], owner: User) -> Classroom:
    classroom = Classroom(name=name, description=description, public_slug=slugify(name), owner=owner)
    session.add(classroom)
    _commit(session, "Public slug already in use; try again.")
    session.refresh(classroom)
    logger.info("class created id=%s slug=%s owner=%s", classroom.class_id, classroom.public_slug, owner.user_id)
    return classroom


def class_stats(session: Session, class_ids: Sequence[UUID]) -> dict:
    """Return ``ClassStats`` per class id from the running totals."""

    stmt = (
        select(
            ClassPointsTotal.class_id,
            func.count(ClassPointsTotal.points_total_id),
            func.coalesce(func.sum(ClassPointsTotal.total), 0),
        )
        .where(ClassPointsTotal.class_id.in_(list(class_ids)))
        .group_by(ClassPointsTotal.class_id)
    )
    enrolled_stmt = (
        select(Enrollment.class_id, func.count(Enrollment.enrollment_id))
        .where(Enrollment.class_id.in_(list(class_ids)))
        .group_by(Enrollment.class_id)
    )
    enrolled = dict(session.execute(enrolled_stmt).all())
    stats = {
        class_id: ClassStats(
            student_count=int(enrolled.get(class_id, 0)),
            average_points=0.0,
            total_points_distributed=0,
        )
        for class_id in class_ids
    }
    for class_id, count, total in session.execute(stmt).all():
        average = round(total / count, 2) if count else 0.0
        stats[class_id] = ClassStats(
            student_count=int(enrolled.get(class_id, 0)),
            average_points=average,
            total_points_distributed=int(total),
        )
    return stats


def list_classes(session: Session, *, actor: User) -> List[Classroom]:
    """Classes visible to the actor, newest first."""

    stmt = select(Classroom).order_by(Classroom.created_at.desc())
    if actor.role != UserRole.SUPERADMIN:
        assisted = select(class_assistants.c.class_id).where(class_assistants.c.user_id == actor.user_id)
        stmt = stmt.where((Classroom.owner_id == actor.user_id) | Classroom.class_id.in_(assisted))
    return list(session.execute(stmt).unique().scalars().all())


def update_class(
    session: Session,
    classroom: Classroom,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    public_slug: Optional[str] = None,
    is_public: Optional[bool] = None,
    is_archived: Optional[bool] = None,
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> Classroom:
    """Apply a partial update; renaming keeps the slug's random suffix."""

    old_slug = classroom.public_slug
    if name is not None:
        classroom.name = name
        if public_slug is None:
            classroom.public_slug = slugify(name, old_slug.rsplit("-", 1)[-1])
    if description is not None:
        classroom.description = description
    if public_slug is not None:
        classroom.public_slug = public_slug
    if is_public is not None:
        classroom.is_public = is_public
    if is_archived is not None:
        classroom.is_archived = is_archived

    new_slug = classroom.public_slug
    _commit(session, f"Public slug {new_slug!r} is already in use")
    session.refresh(classroom)
    publish_class_change(classroom.class_id, old_slug, new_slug, cache=cache, broker=broker)
    return classroom


def delete_class(
    session: Session,
    classroom: Classroom,
    *,
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> None:
    """Delete a class with its roster, running totals and ledger."""

    class_id = classroom.class_id
    slug = classroom.public_slug
    session.execute(delete(Enrollment).where(Enrollment.class_id == class_id))
    session.execute(delete(ClassPointsTotal).where(ClassPointsTotal.class_id == class_id))
    session.execute(delete(PointsLedger).where(PointsLedger.class_id == class_id))
    session.delete(classroom)
    session.commit()
    logger.info("class deleted id=%s", class_id)
    publish_class_change(class_id, slug, cache=cache, broker=broker)


def add_assistant(session: Session, classroom: Classroom, *, user_id: UUID) -> Classroom:
    user = session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    if user.user_id == classroom.owner_id or user in classroom.assistants:
        raise Conflict("User is already staff of this class")
    classroom.assistants.append(user)
    session.commit()
    session.refresh(classroom)
    return classroom


def remove_assistant(session: Session, classroom: Classroom, *, user_id: UUID) -> Classroom:
    for assistant in list(classroom.assistants):
        if assistant.user_id == user_id:
            classroom.assistants.remove(assistant)
            session.commit()
            session.refresh(classroom)
            return classroom
    raise NotFound(f"User {user_id} is not an assistant of this class")


def _init_points_total(session: Session, class_id: UUID, student_id: UUID) -> None:
    exists = session.execute(
        select(ClassPointsTotal.points_total_id).where(
            ClassPointsTotal.class_id == class_id, ClassPointsTotal.student_id == student_id
        )
    ).first()
    if exists is None:
        session.add(ClassPointsTotal(class_id=class_id, student_id=student_id, total=0, has_negative_history=False))


def enroll_student(
    session: Session,
    classroom: Classroom,
    *,
    name: str,
    email: str,
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> Enrollment:
    """Enroll a student by email, creating the student when unknown."""

    email = email.strip().lower()
    student = session.execute(select(Student).where(Student.email == email)).scalars().first()
    if student is None:
        student = Student(name=name.strip(), email=email, nim=_generate_nim(session))
        session.add(student)
        session.flush()

    existing = session.execute(
        select(Enrollment).where(Enrollment.class_id == classroom.class_id, Enrollment.student_id == student.student_id)
    ).scalar_one_or_none()
    if existing is not None:
        raise Conflict("Student already enrolled")

    enrollment = Enrollment(class_id=classroom.class_id, student_id=student.student_id)
    session.add(enrollment)
    _init_points_total(session, classroom.class_id, student.student_id)
    _commit(session, "Student already enrolled")
    session.refresh(enrollment)
    publish_class_change(classroom.class_id, classroom.public_slug, cache=cache, broker=broker)
    return enrollment


def import_students(
    session: Session,
    classroom: Classroom,
    *,
    rows: Iterable[ImportRow],
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> List[Student]:
    """Enroll parsed roster rows as one transaction.

    Students are matched by email. A NIM given for a new student that already
    belongs to someone else is a conflict and aborts the whole import.
    Already-enrolled students are left as they are.
    """

    imported: List[Student] = []
    for row in rows:
        email = str(row.email).strip().lower()
        student = session.execute(select(Student).where(Student.email == email)).scalars().first()
        if student is None:
            if row.nim:
                owner = session.execute(select(Student).where(Student.nim == row.nim)).scalar_one_or_none()
                if owner is not None:
                    raise Conflict(f"NIM {row.nim} already belongs to another student")
                nim = row.nim
            else:
                nim = _generate_nim(session)
            student = Student(name=row.name.strip(), email=email, nim=nim)
            session.add(student)
            session.flush()

        enrolled = session.execute(
            select(Enrollment.enrollment_id).where(
                Enrollment.class_id == classroom.class_id, Enrollment.student_id == student.student_id
            )
        ).first()
        if enrolled is None:
            session.add(Enrollment(class_id=classroom.class_id, student_id=student.student_id))
        _init_points_total(session, classroom.class_id, student.student_id)
        session.flush()
        imported.append(student)

    _commit(session, "Roster import conflicts with existing students")
    publish_class_change(classroom.class_id, classroom.public_slug, cache=cache, broker=broker)
    logger.info("imported %d students into class %s", len(imported), classroom.class_id)
    return imported


def remove_students(
    session: Session,
    classroom: Classroom,
    *,
    student_ids: Sequence[UUID],
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> int:
    """Unenroll students, deleting their running totals and ledger history.

    Returns the number of enrollments removed.
    """

    ids = list(dict.fromkeys(student_ids))
    if not ids:
        return 0
    class_id = classroom.class_id
    slug = classroom.public_slug
    # Enrollment first: it waits on the row lock held by in-flight adjustments,
    # so the ledger delete below sees every entry they committed.
    removed = session.execute(
        delete(Enrollment).where(Enrollment.class_id == class_id, Enrollment.student_id.in_(ids))
    ).rowcount
    session.execute(
        delete(ClassPointsTotal).where(ClassPointsTotal.class_id == class_id, ClassPointsTotal.student_id.in_(ids))
    )
    session.execute(
        delete(PointsLedger).where(PointsLedger.class_id == class_id, PointsLedger.student_id.in_(ids))
    )
    session.commit()
    logger.info("removed %d students from class %s", removed, class_id)
    publish_class_change(class_id, slug, cache=cache, broker=broker)
    return removed
