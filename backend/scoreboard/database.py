"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file `app.db` next to the package
by default) and provides small helpers used by the application, scripts
and tests.
"""

from sqlmodel import SQLModel, create_engine, Session

from .config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args(settings.DATABASE_URL))


def create_db_and_tables(bind=None):
    """Create database tables using SQLModel metadata.

    This function is intended for local development and lightweight
    scripts; production deployments should rely on a proper migration
    tool (alembic) instead.
    """
    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    _ensure_entry_optional_columns(bind)


def _ensure_entry_optional_columns(bind):
    """Ensure the optional `habitentry` columns exist for older DB files.

    Early databases were created before images and custom labels were
    supported. The ALTERs are idempotent: a duplicate column error simply
    means the file is already up to date.
    """
    with bind.connect() as conn:
        for col in ("image_filename VARCHAR(255)", "custom_label VARCHAR(100)"):
            try:
                conn.exec_driver_sql(f"ALTER TABLE habitentry ADD COLUMN {col}")
                conn.commit()
            except Exception:
                # column already exists
                conn.rollback()


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
