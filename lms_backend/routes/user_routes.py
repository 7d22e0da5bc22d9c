import logging
import os
import random

from fastapi import APIRouter, Depends, File, HTTPException, Path, Query, UploadFile, status
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms_backend.auth.dependencies import get_current_user, require_roles
from lms_backend.core import config
from lms_backend.core.errors import database_unavailable
from lms_backend.database import get_db
from lms_backend.models.user import EDIT_LEVELS, USER_ROLES, User

router = APIRouter(tags=['users'])

logger = logging.getLogger(__name__)

USER_ID_PATTERN = '^[a-fA-F0-9]{24}$'
SEARCHABLE_ROLES = ('student', 'teacher')
SEARCH_COLUMNS = (User.uid, User.email, User.first_name, User.last_name)


class UpdateUserRequest(BaseModel):
    email: str
    role: str
    uid: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    password: str | None = None
    current_password: str | None = None
    is_active: bool | None = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required.')
        return normalized


def split_search_terms(query: str) -> list[str]:
    return [term for term in query.split(' ') if term]


def build_search_condition(terms: list[str]):
    conditions = []
    for term in terms:
        for column in SEARCH_COLUMNS:
            conditions.append(column.icontains(term, autoescape=True))
    return or_(*conditions)


def search_score(user: User, terms: list[str]) -> int:
    values = [(value or '').lower() for value in (user.uid, user.email, user.first_name, user.last_name)]
    return sum(1 for term in terms for value in values if term.lower() in value)


def build_picture_filename(user_id: str, original_name: str | None) -> str:
    randomness = f'-{random.randint(1000, 9999)}'
    _, extension = os.path.splitext(original_name or '')
    return f'{user_id}{randomness}{extension.lower()}'


def store_resized_image(source, destination: str) -> int:
    """Write ``source`` to ``destination`` bounded by the profile image limits.

    The aspect ratio is kept and smaller images are never enlarged.
    """
    with Image.open(source) as image:
        image_format = image.format
        image.thumbnail((config.MAX_PROFILE_IMAGE_WIDTH, config.MAX_PROFILE_IMAGE_HEIGHT))
        image.save(destination, format=image_format)
    return os.path.getsize(destination)


def remove_file_quietly(path: str | None) -> None:
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError:
            logger.warning('Could not remove %s', path)


def clean_user_object(user: User, current_user: User) -> dict:
    data = user.to_dict()
    data['password'] = ''
    # Upstream guarded this with an always-true role check, so only the
    # subject keeps the uid here.
    if current_user.id != user.id:
        data['uid'] = None
    return data


def apply_user_update(user_id: str, data: UpdateUserRequest, current_user: User, db: Session) -> User:
    if data.role not in EDIT_LEVELS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid update role.')
    if current_user.role not in EDIT_LEVELS:
        # Unreachable while the route only admits roles with an edit level.
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Invalid current user role.',
        )

    current_edit_level = EDIT_LEVELS[current_user.role]
    self_modification = user_id == current_user.id

    if self_modification and current_user.role != data.role:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You can't change your own role.")

    same_email = db.query(User).filter(User.email == data.email, User.id != user_id).first()
    if same_email is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='This email address is already in use.')

    old_user = db.query(User).filter(User.id == user_id).first()
    if old_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User was not found.')
    if old_user.role not in EDIT_LEVELS:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Invalid old user role.',
        )
    old_edit_level = EDIT_LEVELS[old_user.role]

    new_uid = data.uid
    if old_user.uid and new_uid is None:
        new_uid = old_user.uid

    if not current_user.is_admin:
        if current_edit_level <= old_edit_level and not self_modification:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You don't have the authorization to change a user of this role.",
            )
        if data.role != old_user.role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only users with admin privileges can change roles.',
            )
        if new_uid != old_user.uid:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only users with admin privileges can change uids.',
            )

    if data.password:
        if not old_user.is_valid_password(data.current_password):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid current password!')
        old_user.set_password(data.password)

    old_user.email = data.email
    old_user.role = data.role
    old_user.uid = new_uid
    if data.first_name is not None:
        old_user.first_name = data.first_name.strip()
    if data.last_name is not None:
        old_user.last_name = data.last_name.strip()
    if data.is_active is not None and current_user.is_admin:
        old_user.is_active = data.is_active

    db.commit()
    db.refresh(old_user)
    return old_user


@router.get('/')
def list_users(
    current_user: User = Depends(require_roles('teacher', 'admin')),
    db: Session = Depends(get_db),
):
    try:
        users = db.query(User).order_by(User.created_at.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return [user.for_user(current_user) for user in users]


# "members/search" keeps the path clear of the /{user_id} route.
@router.get('/members/search')
def search_users(
    role: str = Query(...),
    query: str = Query(default=''),
    limit: int | None = Query(default=None, ge=0),
    current_user: User = Depends(require_roles('teacher', 'admin')),
    db: Session = Depends(get_db),
):
    if role not in SEARCHABLE_ROLES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Method not allowed for this role.')

    query = query.strip()
    if not query:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Query was empty.')

    terms = split_search_terms(query)

    try:
        amount_users = db.query(User).filter(User.role == role).count()
        matches = db.query(User).filter(User.role == role, build_search_condition(terms)).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    matches.sort(key=lambda user: search_score(user, terms), reverse=True)
    if limit:
        matches = matches[:limit]

    return {
        'users': [user.for_user(current_user) for user in matches],
        'meta': {'count': amount_users},
    }


@router.get('/roles/')
def list_roles(current_user: User = Depends(require_roles('admin'))):
    return list(USER_ROLES)


@router.get('/{user_id}')
def get_user(
    user_id: str = Path(..., pattern=USER_ID_PATTERN),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        user = db.query(User).filter(User.id == user_id).first()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User was not found.')
    return user.for_user(current_user)


@router.post('/picture/{user_id}')
def add_user_picture(
    user_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User was not found.')

    os.makedirs(config.USER_UPLOADS_DIR, exist_ok=True)
    filename = build_picture_filename(user_id, file.filename)
    path = os.path.join(config.USER_UPLOADS_DIR, filename)
    while path == user.picture_path:
        filename = build_picture_filename(user_id, file.filename)
        path = os.path.join(config.USER_UPLOADS_DIR, filename)

    try:
        size = store_resized_image(file.file, path)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        remove_file_quietly(path)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid image file.') from exc

    previous_path = user.picture_path
    user.picture_alias = file.filename
    user.picture_name = filename
    user.picture_path = path
    user.picture_size = size

    try:
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        remove_file_quietly(path)
        raise database_unavailable(exc) from exc

    remove_file_quietly(previous_path)
    return clean_user_object(user, current_user)


@router.put('/{user_id}')
def update_user(
    user_id: str,
    data: UpdateUserRequest,
    current_user: User = Depends(require_roles('student', 'teacher', 'admin')),
    db: Session = Depends(get_db),
):
    try:
        updated_user = apply_user_update(user_id, data, current_user, db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    return updated_user.for_user(current_user)


@router.delete('/{user_id}')
def delete_user(
    user_id: str,
    current_user: User = Depends(require_roles('admin')),
    db: Session = Depends(get_db),
):
    try:
        admin_users = db.query(User).filter(User.role == 'admin').all()
        if len(admin_users) == 1 and admin_users[0].id == user_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='There are no other users with admin privileges.',
            )

        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='User was not found.')

        picture_path = user.picture_path
        db.delete(user)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    remove_file_quietly(picture_path)
    return {'result': True}
