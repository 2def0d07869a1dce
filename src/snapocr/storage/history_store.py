# src/snapocr/storage/history_store.py

"""
Durable, bounded log of past recognition results.

Entries live in a SQLite `history` table. The store keeps at most
`max_entries` rows: every insert and every change of the cap evicts the oldest
rows beyond it before returning. Rows are ordered by creation time with the
row id as tiebreaker, so eviction is deterministic even when two entries share
a timestamp.

The store never touches the image files that entries point to; deleting those
is up to the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy import REAL, Column, Integer, Text, create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from snapocr.processing.languages import DEFAULT_LANGUAGE

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 200
DEFAULT_ENGINE = "local"

Base = declarative_base()


class SqliteTimestamp(TypeDecorator):
    """
    A naive UTC datetime stored as TEXT in SQLite's `datetime('now')` layout.

    Values written here sort correctly against rows stamped by the column
    default, because both use UTC and the same `YYYY-MM-DD HH:MM:SS` prefix.
    """
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if isinstance(value, datetime):
            return value.isoformat(sep=" ", timespec="microseconds")
        return value

    def process_result_value(self, value, dialect):
        return datetime.fromisoformat(value) if value else None


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class HistoryRecord(Base):
    """ORM row of the `history` table."""
    __tablename__ = "history"

    id = Column(Integer, primary_key=True)
    created_at = Column(SqliteTimestamp, server_default=text("(datetime('now'))"))
    image_path = Column(Text, nullable=False)
    text_result = Column(Text, nullable=False)
    engine = Column(Text, default=DEFAULT_ENGINE, server_default=text(f"'{DEFAULT_ENGINE}'"))
    lang = Column(Text, default=DEFAULT_LANGUAGE, server_default=text(f"'{DEFAULT_LANGUAGE}'"))
    confidence = Column(REAL, nullable=True)

    def __repr__(self):
        return f"<HistoryRecord(id={self.id}, created_at={self.created_at}, lang={self.lang})>"


@dataclass(frozen=True)
class HistoryEntry:
    """An immutable snapshot of one history row."""
    id: int
    created_at: datetime
    image_path: str
    text: str
    engine: str
    lang: str
    confidence: Optional[float]

    @classmethod
    def from_record(cls, record: HistoryRecord) -> "HistoryEntry":
        return cls(
            id=record.id,
            created_at=record.created_at,
            image_path=record.image_path,
            text=record.text_result,
            engine=record.engine,
            lang=record.lang,
            confidence=record.confidence,
        )


def _newest_first():
    return HistoryRecord.created_at.desc(), HistoryRecord.id.desc()


class HistoryStore:
    """
    SQLite-backed history with a retention cap.

    Args:
        db_path: Path of the SQLite file, or ':memory:'.
        max_entries: Retention cap, at least 1.
    """

    def __init__(self, db_path: Union[str, Path], max_entries: int = DEFAULT_MAX_ENTRIES):
        _validate_max_entries(max_entries)
        self._max_entries = max_entries

        engine_options = {"connect_args": {"check_same_thread": False}}  # runs are recorded from worker threads
        if str(db_path) == ":memory:":
            # Every thread must see the same in-memory database.
            engine_options["poolclass"] = StaticPool
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._engine = create_engine(f"sqlite:///{db_path}", **engine_options)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(bind=self._engine)
        logger.info(f"History store opened at {db_path} (max {max_entries} entries).")
        self.enforce_retention()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def add_entry(
        self,
        image_path: str,
        text: str,
        engine: str = DEFAULT_ENGINE,
        lang: str = DEFAULT_LANGUAGE,
        confidence: Optional[float] = None,
    ) -> HistoryEntry:
        """
        Inserts a new entry, then enforces the retention cap.

        Returns:
            The inserted row as read back from the database.

        Raises:
            RuntimeError: The new row did not survive the retention pass.
        """
        with self._session_factory() as session:
            record = HistoryRecord(
                created_at=utc_now(),
                image_path=image_path,
                text_result=text,
                engine=engine,
                lang=lang,
                confidence=confidence,
            )
            session.add(record)
            session.commit()
            entry_id = record.id

        self.enforce_retention()
        entry = self.get_entry(entry_id)
        if entry is None:
            raise RuntimeError(f"History entry {entry_id} was evicted right after insertion.")
        logger.debug(f"Added history entry {entry.id}.")
        return entry

    def get_entry(self, entry_id: int) -> Optional[HistoryEntry]:
        with self._session_factory() as session:
            record = session.get(HistoryRecord, entry_id)
            return HistoryEntry.from_record(record) if record else None

    def list_entries(self) -> List[HistoryEntry]:
        """Returns every entry, newest first."""
        with self._session_factory() as session:
            records = session.query(HistoryRecord).order_by(*_newest_first()).all()
            return [HistoryEntry.from_record(record) for record in records]

    def count(self) -> int:
        with self._session_factory() as session:
            return session.query(HistoryRecord).count()

    def delete_entry(self, entry_id: int) -> bool:
        """Removes one entry. Returns whether it existed."""
        with self._session_factory() as session:
            deleted = session.query(HistoryRecord).filter(HistoryRecord.id == entry_id).delete()
            session.commit()
        return deleted > 0

    def clear(self) -> int:
        """Removes all entries. Returns how many were removed."""
        with self._session_factory() as session:
            deleted = session.query(HistoryRecord).delete()
            session.commit()
        logger.info(f"Cleared {deleted} history entries.")
        return deleted

    def set_max_entries(self, max_entries: int) -> None:
        """Changes the retention cap and evicts immediately if needed."""
        _validate_max_entries(max_entries)
        self._max_entries = max_entries
        self.enforce_retention()

    def enforce_retention(self) -> int:
        """
        Deletes every entry beyond the `max_entries` most recent ones.

        Returns:
            The number of evicted entries.
        """
        with self._session_factory() as session:
            count = session.query(HistoryRecord).count()
            if count <= self._max_entries:
                return 0
            stale_ids = [
                row.id for row in
                session.query(HistoryRecord.id)
                .order_by(*_newest_first())
                .offset(self._max_entries)
                .all()
            ]
            session.query(HistoryRecord).filter(HistoryRecord.id.in_(stale_ids)).delete(synchronize_session=False)
            session.commit()

        logger.info(f"Evicted {len(stale_ids)} history entries beyond the cap of {self._max_entries}.")
        return len(stale_ids)

    def close(self) -> None:
        self._engine.dispose()


def _validate_max_entries(max_entries: int) -> None:
    if not isinstance(max_entries, int) or isinstance(max_entries, bool) or max_entries < 1:
        raise ValueError(f"max_entries must be an integer >= 1, got {max_entries!r}")
