import logging
import mimetypes
import os
import shutil
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms_backend.auth.dependencies import get_current_user, require_roles
from lms_backend.core import config
from lms_backend.core.errors import database_unavailable
from lms_backend.database import get_db
from lms_backend.models.media import Directory, File as MediaFile
from lms_backend.models.user import User

router = APIRouter(tags=['media'])

logger = logging.getLogger(__name__)

MEDIA_EDITOR_ROLES = ('teacher', 'tutor', 'admin')
UPLOAD_CHUNK_SIZE = 1024 * 1024


class NameRequest(BaseModel):
    name: str

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        if '/' in normalized or '\\' in normalized:
            raise ValueError('Name must not contain path separators.')
        return normalized


def serialize_file(media_file: MediaFile) -> dict:
    return {
        'id': media_file.id,
        'name': media_file.name,
        'link': media_file.link,
        'size': media_file.size,
        'mime_type': media_file.mime_type,
        'directory_id': media_file.directory_id,
    }


def serialize_directory(directory: Directory, lazy: bool = False) -> dict:
    if lazy:
        sub_directories = [
            {'id': child.id, 'name': child.name, 'parent_id': child.parent_id}
            for child in directory.sub_directories
        ]
    else:
        sub_directories = [serialize_directory(child) for child in directory.sub_directories]

    return {
        'id': directory.id,
        'name': directory.name,
        'parent_id': directory.parent_id,
        'files': [serialize_file(media_file) for media_file in directory.files],
        'sub_directories': sub_directories,
    }


def collect_links(directory: Directory) -> list[str]:
    links = [media_file.link for media_file in directory.files]
    for child in directory.sub_directories:
        links.extend(collect_links(child))
    return links


def stored_path(link: str) -> str:
    return os.path.join(config.UPLOADS_DIR, link)


def remove_stored_file(link: str) -> None:
    path = stored_path(link)
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError:
            logger.warning('Could not remove stored file %s', path)


def get_directory_or_404(directory_id: str, db: Session) -> Directory:
    directory = db.query(Directory).filter(Directory.id == directory_id).first()
    if directory is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Directory not found.')
    return directory


def get_file_or_404(file_id: str, db: Session) -> MediaFile:
    media_file = db.query(MediaFile).filter(MediaFile.id == file_id).first()
    if media_file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='File not found.')
    return media_file


def create_directory_record(name: str, parent_id: str | None, db: Session) -> Directory:
    try:
        if parent_id is not None:
            get_directory_or_404(parent_id, db)
        directory = Directory(name=name, parent_id=parent_id)
        db.add(directory)
        db.commit()
        db.refresh(directory)
        return directory
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/directory', status_code=status.HTTP_201_CREATED)
def create_root_directory(
    data: NameRequest,
    current_user: User = Depends(require_roles(*MEDIA_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    directory = create_directory_record(data.name, None, db)
    return serialize_directory(directory, lazy=True)


@router.post('/directory/{parent_id}', status_code=status.HTTP_201_CREATED)
def create_directory(
    parent_id: str,
    data: NameRequest,
    current_user: User = Depends(require_roles(*MEDIA_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    directory = create_directory_record(data.name, parent_id, db)
    return serialize_directory(directory, lazy=True)


@router.get('/directory/{directory_id}')
def get_directory(
    directory_id: str,
    lazy: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        directory = get_directory_or_404(directory_id, db)
        return serialize_directory(directory, lazy=lazy)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/directory/{directory_id}')
def rename_directory(
    directory_id: str,
    data: NameRequest,
    current_user: User = Depends(require_roles(*MEDIA_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        directory = get_directory_or_404(directory_id, db)
        directory.name = data.name
        db.commit()
        db.refresh(directory)
        return serialize_directory(directory, lazy=True)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/directory/{directory_id}')
def delete_directory(
    directory_id: str,
    current_user: User = Depends(require_roles(*MEDIA_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        directory = get_directory_or_404(directory_id, db)
        links = collect_links(directory)
        db.delete(directory)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    for link in links:
        remove_stored_file(link)
    return {'result': True}


@router.post('/file/{parent_id}', status_code=status.HTTP_201_CREATED)
def upload_file(
    parent_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(require_roles(*MEDIA_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    original_name = os.path.basename(file.filename or '') or 'upload'
    _, extension = os.path.splitext(original_name)
    link = f'{uuid.uuid4().hex}{extension.lower()}'
    path = stored_path(link)

    try:
        get_directory_or_404(parent_id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    os.makedirs(config.UPLOADS_DIR, exist_ok=True)
    with open(path, 'wb') as target:
        shutil.copyfileobj(file.file, target, UPLOAD_CHUNK_SIZE)
    size = os.path.getsize(path)

    media_file = MediaFile(
        name=original_name,
        link=link,
        size=size,
        mime_type=file.content_type or mimetypes.guess_type(original_name)[0],
        directory_id=parent_id,
    )
    try:
        db.add(media_file)
        db.commit()
        db.refresh(media_file)
    except SQLAlchemyError as exc:
        db.rollback()
        remove_stored_file(link)
        raise database_unavailable(exc) from exc

    logger.info('Stored %s in directory %s', link, parent_id)
    return serialize_file(media_file)


@router.get('/file/{file_id}')
def get_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return serialize_file(get_file_or_404(file_id, db))
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/download/{file_id}')
def download_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        media_file = get_file_or_404(file_id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    path = stored_path(media_file.link)
    if not os.path.exists(path):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Stored file is missing.')
    return FileResponse(path, filename=media_file.name, media_type=media_file.mime_type)


@router.put('/file/{file_id}')
def rename_file(
    file_id: str,
    data: NameRequest,
    current_user: User = Depends(require_roles(*MEDIA_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        media_file = get_file_or_404(file_id, db)
        media_file.name = data.name
        db.commit()
        db.refresh(media_file)
        return serialize_file(media_file)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.delete('/file/{file_id}')
def delete_file(
    file_id: str,
    current_user: User = Depends(require_roles(*MEDIA_EDITOR_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        media_file = get_file_or_404(file_id, db)
        link = media_file.link
        db.delete(media_file)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    remove_stored_file(link)
    return {'result': True}
