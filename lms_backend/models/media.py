"""Media manager model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import backref, relationship

from lms_backend.database import Base, generate_object_id


class Directory(Base):
    """A folder in a course's media tree."""
    __tablename__ = "directories"

    id = Column(String(24), primary_key=True, default=generate_object_id)
    name = Column(String, nullable=False)
    parent_id = Column(String(24), ForeignKey("directories.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sub_directories = relationship(
        "Directory",
        backref=backref("parent", remote_side=[id]),
        cascade="all, delete-orphan",
    )
    files = relationship("File", back_populates="directory", cascade="all, delete-orphan")


class File(Base):
    """An uploaded file stored under the uploads directory."""
    __tablename__ = "files"

    id = Column(String(24), primary_key=True, default=generate_object_id)
    name = Column(String, nullable=False)
    link = Column(String, nullable=False)
    size = Column(Integer, default=0)
    mime_type = Column(String)
    directory_id = Column(String(24), ForeignKey("directories.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    directory = relationship("Directory", back_populates="files")
