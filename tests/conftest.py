import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from lms_backend.database import Base  # noqa: E402
from lms_backend.models.course import Course  # noqa: E402
from lms_backend.models.media import Directory, File  # noqa: E402
from lms_backend.models.user import User  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    tables = [User.__table__, Directory.__table__, File.__table__, Course.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(tables)))


@pytest.fixture
def make_user(db):
    counter = {'value': 0}

    def factory(role='student', email=None, uid=None, password=None, first_name='Tick', last_name='Studi'):
        counter['value'] += 1
        user = User(
            email=email or f'{role}{counter["value"]}@test.local',
            uid=uid,
            role=role,
            first_name=first_name,
            last_name=last_name,
        )
        if password:
            user.set_password(password)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory
