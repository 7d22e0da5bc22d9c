import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lms_backend.auth import jwt_handler, ldap_auth
from lms_backend.auth.dependencies import get_current_user
from lms_backend.database import get_db
from lms_backend.models.user import User

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip()


class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    uid: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized:
            raise ValueError('A valid email address is required.')
        return normalized

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        return value


def token_response(user: User) -> dict:
    return {
        'access_token': jwt_handler.create_access_token(user.id, role=user.role),
        'token_type': 'bearer',
        'user': user.for_user(user),
    }


def authenticate_local(db: Session, email: str, password: str) -> User | None:
    user = db.query(User).filter(User.email == email.lower()).first()
    if user is None or not user.is_active or not user.is_valid_password(password):
        return None
    return user


def authenticate_directory(db: Session, username: str, password: str) -> User | None:
    entry = ldap_auth.ldap_login(username, password)
    if entry is None:
        return None

    email = (entry.get('email') or username).strip().lower()
    user = (
        db.query(User)
        .filter((User.uid == entry['uid']) | (User.email == email))
        .first()
    )
    if user is None:
        user = User(
            uid=entry['uid'],
            email=email,
            hashed_password='',
            role='student',
            first_name=entry.get('first_name'),
            last_name=entry.get('last_name'),
        )
        db.add(user)
        logger.info('Provisioned directory user %s', entry['uid'])
    elif not user.is_active:
        logger.info('Rejected directory login for inactive user %s', user.id)
        return None
    else:
        user.uid = user.uid or entry['uid']
    db.commit()
    db.refresh(user)
    return user


@router.post('/login')
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = authenticate_local(db, data.email, data.password)
        if user is None:
            # Second chance against the directory service.
            user = authenticate_directory(db, data.email, data.password)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL.',
        ) from exc

    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password.')
    return token_response(user)


@router.post('/register', status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    try:
        if db.query(User).filter(User.email == data.email).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This email address is already in use.',
            )

        user = User(
            email=data.email,
            uid=data.uid,
            role='student',
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
        )
        user.set_password(data.password)
        db.add(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL.',
        ) from exc

    return token_response(user)


@router.get('/me')
def me(current_user: User = Depends(get_current_user)):
    return current_user.for_user(current_user)
