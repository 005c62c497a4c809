"""Class and roster management endpoints."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ...core.cache import LeaderboardCache
from ...core.database import get_db
from ...core.errors import ClassboardError
from ...core.events import LeaderboardBroker
from ...models import Classroom, User
from ...schemas import (
    AssistantAdd,
    ClassCreate,
    ClassRead,
    ClassUpdate,
    ClassWithStats,
    EnrollmentRead,
    EnrollStudent,
    ImportStudents,
    RemoveStudents,
    StudentSummary,
)
from ...services import class_service
from ..deps import get_current_actor, get_leaderboard_broker, get_leaderboard_cache, get_managed_class

router = APIRouter(prefix="/classes", tags=["classes"])


@router.post(
    "",
    response_model=ClassRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a class",
    responses={409: {"description": "Public slug collision"}},
)
def create_class(
    payload: ClassCreate,
    actor: User = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ClassRead:
    """Create a private class owned by the acting user.

    Example request body::

        {
            "name": "Physics 101",
            "description": "Morning section"
        }
    """

    try:
        classroom = class_service.create_class(db, name=payload.name, description=payload.description, owner=actor)
        return classroom
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.get("", response_model=List[ClassWithStats], summary="List classes with points statistics")
def list_classes(
    actor: User = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> List[ClassWithStats]:
    """Return classes the actor owns or assists (all classes for superadmins)."""

    classes = class_service.list_classes(db, actor=actor)
    stats = class_service.class_stats(db, [classroom.class_id for classroom in classes])
    return [
        ClassWithStats(**ClassRead.model_validate(classroom).model_dump(), stats=stats[classroom.class_id])
        for classroom in classes
    ]


@router.get("/{class_id}", response_model=ClassRead, summary="Class details")
def get_class(classroom: Classroom = Depends(get_managed_class)) -> ClassRead:
    return classroom


@router.patch("/{class_id}", response_model=ClassRead, summary="Update a class")
def update_class(
    payload: ClassUpdate,
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> ClassRead:
    """Rename, re-slug, publish/unpublish or archive a class."""

    try:
        return class_service.update_class(
            db,
            classroom,
            **payload.model_dump(exclude_unset=True),
            cache=cache,
            broker=broker,
        )
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a class")
def delete_class(
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> Response:
    class_service.delete_class(db, classroom, cache=cache, broker=broker)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{class_id}/assistants", response_model=ClassRead, summary="Assign an assistant")
def add_assistant(
    payload: AssistantAdd,
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
) -> ClassRead:
    try:
        return class_service.add_assistant(db, classroom, user_id=payload.user_id)
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.delete("/{class_id}/assistants/{user_id}", response_model=ClassRead, summary="Remove an assistant")
def remove_assistant(
    user_id: UUID,
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
) -> ClassRead:
    try:
        return class_service.remove_assistant(db, classroom, user_id=user_id)
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post(
    "/{class_id}/enroll",
    response_model=EnrollmentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll a student",
    responses={409: {"description": "Student already enrolled"}},
)
def enroll_student(
    payload: EnrollStudent,
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> EnrollmentRead:
    """Enroll a student by email; unknown students are created with a generated NIM.

    Example request body::

        {
            "student_name": "Dewi Lestari",
            "student_email": "dewi@example.edu"
        }
    """

    try:
        enrollment = class_service.enroll_student(
            db,
            classroom,
            name=payload.student_name,
            email=str(payload.student_email),
            cache=cache,
            broker=broker,
        )
        return enrollment
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post(
    "/{class_id}/import",
    response_model=List[StudentSummary],
    summary="Import a parsed roster",
    responses={409: {"description": "NIM already belongs to another student"}},
)
def import_students(
    payload: ImportStudents,
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> List[StudentSummary]:
    try:
        return class_service.import_students(db, classroom, rows=payload.students, cache=cache, broker=broker)
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.delete(
    "/{class_id}/students/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a student from a class",
)
def remove_student(
    student_id: UUID,
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> Response:
    """Unenroll a student; their running total and ledger history in the class are deleted."""

    removed = class_service.remove_students(db, classroom, student_ids=[student_id], cache=cache, broker=broker)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not enrolled in this class")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{class_id}/students/bulk-delete", summary="Remove several students")
def remove_students(
    payload: RemoveStudents,
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> dict[str, int]:
    removed = class_service.remove_students(
        db, classroom, student_ids=payload.student_ids, cache=cache, broker=broker
    )
    return {"removed": removed}
