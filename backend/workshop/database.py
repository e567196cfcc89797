"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file by default) and provides the
small helpers used by the application, scripts and tests.
"""

import logging
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.exc import DBAPIError
from .config import settings

logger = logging.getLogger("workshop.database")

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args)

# Columns added after the first workshop runs; older DB files get them on startup.
_LATE_TEAM_COLUMNS = (
    "access_token VARCHAR",
    "avatar_icon VARCHAR",
    "cohort_tag VARCHAR",
    "submitted_website_url VARCHAR",
    "website_submitted_at TIMESTAMP",
)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    This function is intended for local development and lightweight
    scripts; production deployments should rely on a proper migration
    tool (alembic) instead.
    """
    SQLModel.metadata.create_all(engine)
    _ensure_team_columns()


def _ensure_team_columns():
    """Ensure late-added `team` columns exist for older DB files.

    Each ALTER is attempted on its own and a failure (column already
    present) is ignored. Teams created before access tokens existed are
    backfilled by `scripts/add_access_tokens.py`.
    """
    with engine.connect() as conn:
        for col in _LATE_TEAM_COLUMNS:
            try:
                conn.exec_driver_sql(f"ALTER TABLE team ADD COLUMN {col}")
                conn.commit()
                logger.info("added missing team column: %s", col.split()[0])
            except DBAPIError:
                conn.rollback()


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
