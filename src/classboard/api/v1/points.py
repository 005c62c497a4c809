"""Point adjustment, staff leaderboard and history endpoints."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ...core.cache import LeaderboardCache
from ...core.database import get_db
from ...core.errors import BulkAdjustmentFailed, ClassboardError, NotEnrolled
from ...core.events import LeaderboardBroker
from ...models import Classroom, User
from ...schemas import (
    AdjustmentRead,
    LeaderboardEntry,
    LedgerEntryRead,
    PointsAdjust,
    PointsBulkAdjust,
    PointsTotalRead,
)
from ...services import leaderboard_service, points_service
from ..deps import get_current_actor, get_leaderboard_broker, get_leaderboard_cache, get_managed_class

router = APIRouter(prefix="/classes", tags=["points"])


def _adjustment_read(adjustment: points_service.Adjustment) -> AdjustmentRead:
    return AdjustmentRead(
        ledger_entry=LedgerEntryRead.model_validate(adjustment.ledger_entry),
        points_total=PointsTotalRead.model_validate(adjustment.points_total),
    )


@router.post(
    "/{class_id}/points",
    response_model=AdjustmentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Award or deduct points",
    responses={
        201: {
            "description": "Adjustment recorded",
            "content": {
                "application/json": {
                    "example": {
                        "ledger_entry": {
                            "ledger_entry_id": "7d4f3a52-1a4c-4a55-9d1e-2f3b5c6d7e8f",
                            "class_id": "11111111-1111-1111-1111-111111111111",
                            "student_id": "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb",
                            "delta": -20,
                            "reason": "Late homework",
                            "created_by_user_id": "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa",
                            "created_at": "2026-03-02T09:15:30",
                        },
                        "points_total": {
                            "class_id": "11111111-1111-1111-1111-111111111111",
                            "student_id": "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb",
                            "total": 130,
                            "has_negative_history": True,
                            "updated_at": "2026-03-02T09:15:30",
                        },
                    }
                }
            },
        },
        400: {"description": "Student not enrolled"},
        404: {"description": "Class not found"},
    },
)
def adjust_points(
    payload: PointsAdjust,
    classroom: Classroom = Depends(get_managed_class),
    actor: User = Depends(get_current_actor),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> AdjustmentRead:
    """Append a ledger entry and move the student's running total.

    Example request body::

        {
            "student_id": "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb",
            "delta": -20,
            "reason": "Late homework"
        }
    """

    try:
        adjustment = points_service.adjust_points(
            db,
            class_id=classroom.class_id,
            student_id=payload.student_id,
            delta=payload.delta,
            actor_id=actor.user_id,
            reason=payload.reason,
            cache=cache,
            broker=broker,
        )
        return _adjustment_read(adjustment)
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post(
    "/{class_id}/points/bulk",
    response_model=List[AdjustmentRead],
    status_code=status.HTTP_201_CREATED,
    summary="Apply one adjustment to several students",
    responses={400: {"description": "A student is not enrolled; nothing was applied"}},
)
def adjust_points_bulk(
    payload: PointsBulkAdjust,
    classroom: Classroom = Depends(get_managed_class),
    actor: User = Depends(get_current_actor),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> List[AdjustmentRead]:
    """All-or-nothing batch: any failing student aborts the whole request."""

    try:
        adjustments = points_service.bulk_adjust_points(
            db,
            class_id=classroom.class_id,
            student_ids=payload.student_ids,
            delta=payload.delta,
            actor_id=actor.user_id,
            reason=payload.reason,
            cache=cache,
            broker=broker,
        )
        return [_adjustment_read(adjustment) for adjustment in adjustments]
    except (NotEnrolled, BulkAdjustmentFailed) as exc:
        db.rollback()
        raise HTTPException(
            status_code=exc.status_code,
            detail={"message": exc.detail, "student_id": str(exc.student_id)},
        ) from exc
    except ClassboardError as exc:
        db.rollback()
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.get(
    "/{class_id}/leaderboard",
    response_model=List[LeaderboardEntry],
    summary="Staff leaderboard",
)
def get_leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=500, description="Number of entries to return"),
    offset: int = Query(0, ge=0, description="Entries to skip"),
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
) -> List[LeaderboardEntry]:
    """Return the ranked, badge-decorated leaderboard of a class."""

    try:
        return leaderboard_service.get_leaderboard(
            db, class_id=classroom.class_id, cache=cache, limit=limit, offset=offset
        )
    except ClassboardError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.get(
    "/{class_id}/students/{student_id}/history",
    response_model=List[LedgerEntryRead],
    summary="Ledger history of a student",
)
def get_history(
    student_id: UUID,
    limit: int = Query(50, ge=1, le=200, description="Maximum items to return"),
    offset: int = Query(0, ge=0, description="Items to skip for pagination"),
    classroom: Classroom = Depends(get_managed_class),
    db: Session = Depends(get_db),
) -> List[LedgerEntryRead]:
    """Return a student's adjustments in the class, newest first."""

    try:
        entries = points_service.get_history(
            db, class_id=classroom.class_id, student_id=student_id, limit=limit, offset=offset
        )
        return list(entries)
    except ClassboardError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
