"""
Baseline Store

Durable per-site record of the last successfully fetched fingerprint and
text. Each site id is an independent namespace; the scheduler guarantees a
single writer per key, so no cross-site locking is needed here.

All methods are blocking; async callers go through asyncio.to_thread.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from sitewatch.database.models import BaselineRecord, create_db_engine, create_session_factory, init_db

logger = logging.getLogger(__name__)


class BaselineStoreError(Exception):
    """Storage failure while reading or writing a baseline."""


@dataclass(frozen=True)
class Baseline:
    """
    Comparison anchor for change detection.

    Attributes:
        fingerprint: SHA-256 hex digest of the processed text
        text: Normalized, scrubbed page text
        last_checked_at: When this baseline was recorded (UTC, tz-aware)
    """
    fingerprint: str
    text: str
    last_checked_at: datetime


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _to_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaselineStore:
    """
    SQLAlchemy-backed baseline storage keyed by site id.

    Usage:
        store = BaselineStore.from_path(".data/sitewatch.db")
        baseline = store.read("site-1")   # None on first observation
        store.write("site-1", Baseline(...))
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_path(cls, db_path: str) -> "BaselineStore":
        """Open (and create if needed) the SQLite baseline database at db_path."""
        engine = create_db_engine(db_path)
        init_db(engine)
        return cls(create_session_factory(engine))

    @contextmanager
    def _session(self):
        """Session with auto-commit/rollback. SQLAlchemy errors surface as BaselineStoreError."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error(f"❌ [BASELINE] Database operation failed: {e}")
            session.rollback()
            raise BaselineStoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def read(self, site_id: str) -> Optional[Baseline]:
        """
        Load the baseline for site_id.

        Returns:
            Baseline, or None if the site has never been observed
        """
        with self._session() as session:
            record = session.get(BaselineRecord, site_id)
            if record is None:
                logger.debug(f"📭 [BASELINE] No baseline found for site: {site_id}")
                return None

            baseline = Baseline(
                fingerprint=record.fingerprint,
                text=record.text,
                last_checked_at=_to_aware_utc(record.last_checked_at),
            )

        logger.debug(f"📂 [BASELINE] Loaded baseline for {site_id} ({baseline.fingerprint[:12]}...)")
        return baseline

    def write(self, site_id: str, baseline: Baseline) -> None:
        """Atomically replace the baseline for site_id (single transaction)."""
        with self._session() as session:
            session.merge(BaselineRecord(
                site_id=site_id,
                fingerprint=baseline.fingerprint,
                text=baseline.text,
                last_checked_at=_to_naive_utc(baseline.last_checked_at),
            ))

        logger.debug(f"💾 [BASELINE] Saved baseline for {site_id} ({baseline.fingerprint[:12]}...)")
