"""User model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from werkzeug.security import check_password_hash, generate_password_hash

from lms_backend.database import Base, generate_object_id

USER_ROLES = ('student', 'teacher', 'tutor', 'admin')

# Tutors have no edit level and therefore cannot edit anyone.
EDIT_LEVELS = {
    'student': 0,
    'teacher': 1,
    'admin': 2,
}

PRIVILEGED_VIEWER_ROLES = {'teacher', 'admin'}


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(String(24), primary_key=True, default=generate_object_id)
    uid = Column(String, index=True, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, default="")
    role = Column(String, index=True, default='student')
    first_name = Column(String)
    last_name = Column(String)
    picture_alias = Column(String)
    picture_name = Column(String)
    picture_path = Column(String)
    picture_size = Column(Integer)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str) -> None:
        self.hashed_password = generate_password_hash(password)

    def is_valid_password(self, password: str | None) -> bool:
        if not password or not self.hashed_password:
            return False
        return check_password_hash(self.hashed_password, password)

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    def picture(self) -> dict | None:
        if not self.picture_name:
            return None
        return {
            'alias': self.picture_alias,
            'name': self.picture_name,
            'path': self.picture_path,
            'size': self.picture_size,
        }

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'uid': self.uid,
            'email': self.email,
            'role': self.role,
            'is_active': bool(self.is_active),
            'profile': {
                'first_name': self.first_name,
                'last_name': self.last_name,
                'picture': self.picture(),
            },
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }

    def for_user(self, viewer: "User | None") -> dict:
        """Project the record for ``viewer``; the uid stays visible only to the
        subject and to teachers and admins."""
        data = self.to_dict()
        is_self = viewer is not None and viewer.id == self.id
        if not is_self and (viewer is None or viewer.role not in PRIVILEGED_VIEWER_ROLES):
            data['uid'] = None
        return data
