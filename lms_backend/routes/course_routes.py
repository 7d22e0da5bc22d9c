from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms_backend.auth.dependencies import require_roles
from lms_backend.core.errors import database_unavailable
from lms_backend.database import get_db
from lms_backend.models.course import Course
from lms_backend.models.media import Directory
from lms_backend.models.user import User

router = APIRouter(tags=['courses'])

COURSE_EDITOR_ROLES = ('teacher', 'tutor', 'admin')


class CreateCourseRequest(BaseModel):
    name: str
    description: str = ''

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Course name is required.')
        return normalized


class UpdateCourseRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    media_id: str | None = None


def serialize_course(course: Course) -> dict:
    media = None
    if course.media is not None:
        media = {'id': course.media.id, 'name': course.media.name}
    return {
        'id': course.id,
        'name': course.name,
        'description': course.description,
        'course_admin_id': course.course_admin_id,
        'media': media,
    }


def get_course_or_404(course_id: str, db: Session) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Course not found.')
    return course


@router.post('/', status_code=status.HTTP_201_CREATED)
def create_course(
    data: CreateCourseRequest,
    current_user: User = Depends(require_roles('teacher', 'admin')),
    db: Session = Depends(get_db),
):
    try:
        course = Course(name=data.name, description=data.description, course_admin_id=current_user.id)
        db.add(course)
        db.commit()
        db.refresh(course)
        return serialize_course(course)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/{course_id}/edit')
def read_course_to_edit(
    course_id: str,
    current_user: User = Depends(require_roles(*COURSE_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        return serialize_course(get_course_or_404(course_id, db))
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/{course_id}')
def update_course(
    course_id: str,
    data: UpdateCourseRequest,
    current_user: User = Depends(require_roles(*COURSE_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        course = get_course_or_404(course_id, db)

        if data.media_id is not None:
            media = db.query(Directory).filter(Directory.id == data.media_id).first()
            if media is None or media.parent_id is not None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Media must reference a root directory.',
                )
            course.media_id = media.id
        if data.name is not None and data.name.strip():
            course.name = data.name.strip()
        if data.description is not None:
            course.description = data.description

        db.commit()
        db.refresh(course)
        return serialize_course(course)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
