import logging
import os
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.config import settings
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class AppSettings(Base):
    """Key/value entries (profile list, active profile id)."""

    __tablename__ = "app_settings"

    key = Column(String(50), primary_key=True)
    value = Column(Text, nullable=False)  # Raw string; callers encode JSON themselves
    updated_at = Column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self):
        return f"<AppSettings(key='{self.key}')>"


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if database and database != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(database)), exist_ok=True)


class DatabaseStorage:
    """Durable key/value storage on top of the ``app_settings`` table.

    Every write runs in its own transaction, so a reader never sees a
    half-written value.
    """

    def __init__(self, database_url: Optional[str] = None):
        url = database_url or settings.database_url
        _ensure_sqlite_dir(url)
        self.engine = create_engine(url, echo=False)
        self._session = sessionmaker(self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        logger.info(f"Profile storage ready at {self.engine.url.render_as_string(hide_password=True)}")

    def get_item(self, key: str) -> Optional[str]:
        with self._session() as session:
            setting = session.execute(
                select(AppSettings).where(AppSettings.key == key)
            ).scalar_one_or_none()
            return setting.value if setting is not None else None

    def set_item(self, key: str, value: str) -> None:
        stmt = sqlite_insert(AppSettings).values(
            key=key,
            value=value,
            updated_at=utcnow(),
        ).on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": utcnow()},
        )
        with self._session.begin() as session:
            session.execute(stmt)

    def remove_item(self, key: str) -> None:
        with self._session.begin() as session:
            session.execute(delete(AppSettings).where(AppSettings.key == key))

    def close(self) -> None:
        """Dispose of pooled connections."""
        self.engine.dispose()
