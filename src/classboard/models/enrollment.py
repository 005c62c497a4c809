"""Enrollment linking students to classes."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class Enrollment(Base):
    """Active membership of a student in a class."""

    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("class_id", "student_id", name="enrollments_class_student_unique"),)

    enrollment_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid(as_uuid=True), ForeignKey("classes.class_id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.student_id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    classroom = relationship("Classroom", back_populates="enrollments")
    student = relationship("Student", back_populates="enrollments")
