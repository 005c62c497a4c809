"""Staff user model."""

import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow
from .classroom import class_assistants


class UserRole(str, enum.Enum):
    """Staff roles allowed to manage classes."""

    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"
    STUDENT_ASSISTANT = "STUDENT_ASSISTANT"


class User(Base):
    """Instructor or assistant acting on classes."""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="users_email_unique"),)

    user_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False)
    name = Column(String, nullable=False)
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.ADMIN)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    owned_classes = relationship("Classroom", back_populates="owner")
    assisted_classes = relationship("Classroom", secondary=class_assistants, back_populates="assistants")
