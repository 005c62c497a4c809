"""Denormalized running total per student per class."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class ClassPointsTotal(Base):
    """Running total kept equal to the sum of the pair's ledger deltas.

    ``has_negative_history`` is sticky: once any negative delta lands it stays
    true, whatever the total does afterwards.
    """

    __tablename__ = "class_points_totals"
    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="class_points_totals_class_student_unique"),
    )

    points_total_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.class_id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.student_id", ondelete="CASCADE"), nullable=False)
    total = Column(Integer, nullable=False, default=0)
    has_negative_history = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    classroom = relationship("Classroom", back_populates="points_totals")
    student = relationship("Student", back_populates="points_totals")
