"""SQLModel engine singleton and schema bootstrap."""
import logging

from sqlmodel import Session, SQLModel, create_engine, select

from tasksync.config import get_settings

logger = logging.getLogger(__name__)

_engine = None


def get_engine():
    """Return the module-level engine, creating it (and the schema) on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},  # SQLite only; store calls run in executor threads
        )
        init_db(_engine)
    return _engine


def init_db(engine) -> None:
    """Create all tables, apply migrations and make sure the Inbox project exists.

    Idempotent: safe to call on every start.
    """
    # Import all models so metadata is populated before create_all
    from tasksync.models.records import Project, Task, Tag, TaskTag  # noqa
    from tasksync.models.sync import SyncLog, SyncMetadata  # noqa
    SQLModel.metadata.create_all(engine)
    from tasksync.db.migrations import run_migrations
    run_migrations(engine)
    ensure_inbox(engine)


def ensure_inbox(engine) -> None:
    """Create the Inbox project if it is missing.

    The Inbox is seeded locally and is not marked for sync; the first export
    or the first download links it to its remote counterpart.
    """
    from tasksync.models.records import INBOX_PROJECT_NAME, Project

    with Session(engine) as s:
        inbox = s.exec(
            select(Project).where(Project.name == INBOX_PROJECT_NAME)
        ).first()
        if inbox is None:
            s.add(Project(name=INBOX_PROJECT_NAME))
            s.commit()
            logger.info("Created missing %s project", INBOX_PROJECT_NAME)
