"""
Site Watcher Database Models - SQLAlchemy ORM

One row per site holding the last successfully fetched fingerprint and
normalized text. Designed for SQLite with WAL mode.
"""
import logging
import os

from sqlalchemy import Column, DateTime, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)
Base = declarative_base()


class BaselineRecord(Base):
    """
    Last-seen state of a monitored site.

    Overwritten (never appended) after every successful fetch whose
    fingerprint differs from the stored one, and created on first observation.
    """
    __tablename__ = 'baselines'

    site_id = Column(String, primary_key=True, comment="SiteConfig.id")
    fingerprint = Column(String(64), nullable=False, comment="SHA-256 hex of normalized, scrubbed text")
    text = Column(Text, nullable=False, comment="Normalized, scrubbed page text")
    last_checked_at = Column(DateTime, nullable=False, comment="When this baseline was recorded (UTC)")

    def __repr__(self) -> str:
        return f"<BaselineRecord(site_id='{self.site_id}', fingerprint='{self.fingerprint[:12]}...')>"


def create_db_engine(db_path: str) -> Engine:
    """
    Create a SQLite engine for the baseline database.

    Args:
        db_path: Filesystem path of the SQLite file (parent dir is created)

    Returns:
        Configured SQLAlchemy engine
    """
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    # check_same_thread=False: calls arrive from asyncio.to_thread workers
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={
            "check_same_thread": False,
            "timeout": 30
        },
        pool_pre_ping=True,
        echo=False
    )
    event.listen(engine, "connect", set_sqlite_pragma)
    return engine


def set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Configure SQLite pragmas.

    - WAL mode: concurrent readers while one job writes
    - busy_timeout: wait instead of failing on lock
    - synchronous=NORMAL: durable across process crashes in WAL mode
    """
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """
    Create all tables. Safe to call multiple times (idempotent).
    """
    try:
        Base.metadata.create_all(bind=engine)
        logger.info(f"Database initialized successfully at {engine.url}")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise
