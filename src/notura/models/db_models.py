"""SQLAlchemy database models for Notura Store."""
import logging
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Integer, String,
                        Table, Text, create_engine, event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from notura.config import config
from notura.models.schema import utc_now

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for images attached to notes
note_images = Table(
    "note_images",
    Base.metadata,
    Column(
        "note_id", String(36), ForeignKey("notes.id", ondelete="CASCADE"),
        primary_key=True
    ),
    Column(
        "image_id", String(36), ForeignKey("images.id", ondelete="CASCADE"),
        primary_key=True
    ),
    Column("created_at", DateTime(timezone=True), default=utc_now, nullable=False),
)


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(String(36), primary_key=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    collection_id = Column(
        String(36), ForeignKey("collections.id"), nullable=True, index=True
    )
    # JSON array
    tags = Column(Text, default="[]", nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )
    word_count = Column(Integer, default=0, nullable=False)
    character_count = Column(Integer, default=0, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False, index=True)

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


class DBCollection(Base):
    """Database model for a collection (self-referential tree)."""
    __tablename__ = "collections"
    id = Column(String(36), primary_key=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(
        String(36), ForeignKey("collections.id"), nullable=True, index=True
    )
    color = Column(String(32), nullable=True)
    icon = Column(String(64), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of collection."""
        return (
            f"<Collection(id='{self.id}', name='{self.name}', "
            f"parent='{self.parent_id}', sort_order={self.sort_order})>"
        )


class DBImage(Base):
    """Database model for image metadata. Bytes live on disk."""
    __tablename__ = "images"
    id = Column(String(36), primary_key=True)
    filename = Column(String(255), nullable=False)
    original_name = Column(Text, nullable=False)
    file_path = Column(Text, nullable=False)
    size = Column(Integer, nullable=False)
    mime_type = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of image."""
        return f"<Image(id='{self.id}', filename='{self.filename}')>"


def init_db(db_url: Optional[str] = None, in_memory: bool = False) -> Engine:
    """Initialize the database with hardened configuration.

    Applies SQLite settings for crash resilience and concurrent readers:
    - WAL (Write-Ahead Logging) mode so readers are not blocked by a writer
    - NORMAL synchronous mode (good balance of safety vs speed)
    - foreign_keys=ON so note_images rows cascade with their note or image
    - busy_timeout so lock waits surface as errors instead of hanging
    - QueuePool for file databases, StaticPool for a shared in-memory database

    Args:
        db_url: SQLAlchemy URL. Defaults to the configured database path.
        in_memory: Use a private in-memory database (ignores db_url).

    Returns:
        The configured engine. Pass it explicitly to repositories and services.
    """
    if in_memory:
        engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            db_url or config.get_db_url(),
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

    busy_timeout = config.busy_timeout_ms

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout)}")
        cursor.close()

    Base.metadata.create_all(engine)

    # Create FTS5 virtual table and sync triggers
    init_fts5(engine)

    logger.debug(f"Database initialized: {engine.url}")
    return engine


def init_fts5(engine: Engine) -> None:
    """Initialize the FTS5 full-text index over notes.

    The virtual table is an external-content index on the notes table keyed
    by rowid. Triggers keep it in lockstep with every insert, update and
    delete, inside the same transaction as the note write.
    """
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
                title, content, tags,
                content='notes',
                content_rowid='rowid'
            )
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_fts_insert AFTER INSERT ON notes BEGIN
                INSERT INTO notes_fts(rowid, title, content, tags)
                VALUES (new.rowid, new.title, new.content, new.tags);
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_fts_delete AFTER DELETE ON notes BEGIN
                INSERT INTO notes_fts(notes_fts, rowid, title, content, tags)
                VALUES ('delete', old.rowid, old.title, old.content, old.tags);
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_fts_update AFTER UPDATE ON notes BEGIN
                INSERT INTO notes_fts(notes_fts, rowid, title, content, tags)
                VALUES ('delete', old.rowid, old.title, old.content, old.tags);
                INSERT INTO notes_fts(rowid, title, content, tags)
                VALUES (new.rowid, new.title, new.content, new.tags);
            END
        """))

        conn.commit()


def rebuild_fts_index(engine: Engine) -> int:
    """Rebuild the FTS5 index from the notes table.

    Returns:
        Number of notes indexed.
    """
    with engine.connect() as conn:
        conn.execute(text("INSERT INTO notes_fts(notes_fts) VALUES('rebuild')"))
        conn.commit()
        count = conn.execute(text("SELECT COUNT(*) FROM notes")).scalar()

    return count or 0


def get_session_factory(engine: Engine) -> sessionmaker:
    """Get a session factory bound to the given engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def begin_immediate(session: Session) -> None:
    """Start a write transaction that holds the SQLite write lock.

    Must be the first statement issued on the session. Read-then-write
    sequences (next sort order, monotonic updated_at) run under this lock so
    concurrent writers serialize instead of reading the same state.
    """
    session.execute(text("BEGIN IMMEDIATE"))
