"""Student domain model."""

import uuid

from sqlalchemy import Column, DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class Student(Base):
    """Represents a learner who can be enrolled in several classes."""

    __tablename__ = "students"
    __table_args__ = (UniqueConstraint("nim", name="students_nim_unique"),)

    student_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    nim = Column(String, nullable=False)
    email = Column(String)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    enrollments = relationship("Enrollment", back_populates="student", passive_deletes=True)
    points_totals = relationship("ClassPointsTotal", back_populates="student", passive_deletes=True)
    ledger_entries = relationship("PointsLedger", back_populates="student", passive_deletes=True)
