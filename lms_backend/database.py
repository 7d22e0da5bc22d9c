import os
import secrets
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lms.db")

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_user_schema_checked = False


def generate_object_id() -> str:
    """Return a 24 character hex id, shaped like the ids the web client expects."""
    return secrets.token_hex(12)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_user_schema() -> None:
    global _user_schema_checked

    if _user_schema_checked:
        return

    with _schema_lock:
        if _user_schema_checked:
            return

        inspector = inspect(engine)

        if 'users' not in inspector.get_table_names():
            _user_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('users')}
        migration_steps = [
            ('uid', 'ALTER TABLE users ADD COLUMN uid VARCHAR'),
            ('first_name', 'ALTER TABLE users ADD COLUMN first_name VARCHAR'),
            ('last_name', 'ALTER TABLE users ADD COLUMN last_name VARCHAR'),
            ('picture_alias', 'ALTER TABLE users ADD COLUMN picture_alias VARCHAR'),
            ('picture_name', 'ALTER TABLE users ADD COLUMN picture_name VARCHAR'),
            ('picture_path', 'ALTER TABLE users ADD COLUMN picture_path VARCHAR'),
            ('picture_size', 'ALTER TABLE users ADD COLUMN picture_size INTEGER'),
            ('is_active', 'ALTER TABLE users ADD COLUMN is_active BOOLEAN DEFAULT TRUE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_users_uid ON users(uid)')
            )

        _user_schema_checked = True
