"""Error taxonomy shared by the points engine, leaderboard and roster services."""

from __future__ import annotations

from typing import Optional
from uuid import UUID


class ClassboardError(Exception):
    """Base class for business errors surfaced to API callers."""

    status_code = 400

    def __init__(self, detail: str, status_code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ValidationFailure(ClassboardError):
    """Malformed input rejected before any write."""

    status_code = 422


class NotEnrolled(ClassboardError):
    """Adjustment targets a student that is not enrolled in the class."""

    def __init__(self, class_id: UUID, student_id: UUID) -> None:
        super().__init__(f"Student {student_id} is not enrolled in class {class_id}")
        self.class_id = class_id
        self.student_id = student_id


class NotFound(ClassboardError):
    """Referenced class, student or slug does not exist (or is not visible)."""

    status_code = 404


class Conflict(ClassboardError):
    """Uniqueness violation such as a duplicate enrollment or slug."""

    status_code = 409


class Unauthorized(ClassboardError):
    """No acting user could be resolved for the request."""

    status_code = 401


class BulkAdjustmentFailed(ClassboardError):
    """A bulk adjustment aborted; nothing from the batch was committed."""

    def __init__(self, student_id: UUID, reason: str, status_code: int = 400) -> None:
        super().__init__(f"Bulk adjustment aborted at student {student_id}: {reason}", status_code)
        self.student_id = student_id
        self.reason = reason
