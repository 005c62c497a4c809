"""Student progress endpoint."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.errors import ClassboardError
from ...models import User
from ...schemas import StudentProgress
from ...services import progress_service
from ..deps import get_current_actor

router = APIRouter(prefix="/students", tags=["students"])


@router.get(
    "/{student_id}/progress",
    response_model=StudentProgress,
    summary="Student progress across classes",
    responses={
        200: {
            "description": "Rank, level and trend per class",
            "content": {
                "application/json": {
                    "example": {
                        "student": {
                            "student_id": "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb",
                            "nim": "22010001",
                            "name": "Dewi Lestari",
                            "email": "dewi@example.edu",
                        },
                        "classes": [
                            {
                                "class_id": "11111111-1111-1111-1111-111111111111",
                                "class_name": "Physics 101",
                                "is_archived": False,
                                "rank": 2,
                                "total_points": 1250,
                                "level": 2,
                                "next_level_threshold": 2000,
                                "progress_percent": 25.0,
                                "recent_gain": 80,
                                "trend": "up",
                            }
                        ],
                    }
                }
            },
        },
        404: {"description": "Student not found"},
    },
)
def get_student_progress(
    student_id: UUID,
    _actor: User = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> StudentProgress:
    try:
        return progress_service.get_student_progress(db, student_id=student_id)
    except ClassboardError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
