"""Course model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from lms_backend.database import Base, generate_object_id


class Course(Base):
    """Represents a course and the root of its media tree."""
    __tablename__ = "courses"

    id = Column(String(24), primary_key=True, default=generate_object_id)
    name = Column(String, nullable=False)
    description = Column(String, default="")
    course_admin_id = Column(String(24), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    media_id = Column(String(24), ForeignKey("directories.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    media = relationship("Directory")
