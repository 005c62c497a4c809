"""SQLAlchemy models for Classboard."""

from .class_points_total import ClassPointsTotal
from .classroom import Classroom, class_assistants
from .enrollment import Enrollment
from .points_ledger import PointsLedger
from .student import Student
from .user import User, UserRole

__all__ = [
    "ClassPointsTotal",
    "Classroom",
    "Enrollment",
    "PointsLedger",
    "Student",
    "User",
    "UserRole",
    "class_assistants",
]
