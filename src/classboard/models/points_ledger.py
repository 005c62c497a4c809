"""Append-only points ledger."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class PointsLedger(Base):
    """Immutable record of one point adjustment for a student in a class."""

    __tablename__ = "points_ledger"
    __table_args__ = (
        Index("points_ledger_class_student_created", "class_id", "student_id", "created_at"),
        Index("points_ledger_class_created", "class_id", "created_at"),
    )

    ledger_entry_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.class_id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.student_id", ondelete="CASCADE"), nullable=False)
    delta = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    created_by_user_id = Column(Uuid(as_uuid=True), ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    classroom = relationship("Classroom", back_populates="ledger_entries")
    student = relationship("Student", back_populates="ledger_entries")
    created_by = relationship("User")
