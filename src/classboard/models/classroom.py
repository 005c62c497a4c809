"""Classroom model with its owner and assistant relations."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Table, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow

class_assistants = Table(
    "class_assistants",
    Base.metadata,
    Column("class_id", Uuid(as_uuid=True), ForeignKey("classes.class_id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True),
)


class Classroom(Base):
    """A class whose students collect points on a shared leaderboard."""

    __tablename__ = "classes"
    __table_args__ = (UniqueConstraint("public_slug", name="classes_public_slug_unique"),)

    class_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(String)
    public_slug = Column(String, nullable=False)
    is_public = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="owned_classes", lazy="joined")
    assistants = relationship("User", secondary=class_assistants, back_populates="assisted_classes", lazy="selectin")
    enrollments = relationship("Enrollment", back_populates="classroom", cascade="all, delete-orphan", passive_deletes=True)
    points_totals = relationship(
        "ClassPointsTotal", back_populates="classroom", cascade="all, delete-orphan", passive_deletes=True
    )
    ledger_entries = relationship(
        "PointsLedger", back_populates="classroom", cascade="all, delete-orphan", passive_deletes=True
    )

    def is_staff(self, user) -> bool:
        """Return True when ``user`` owns or assists this class."""

        if user.user_id == self.owner_id:
            return True
        return any(assistant.user_id == user.user_id for assistant in self.assistants)
