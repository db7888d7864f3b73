"""
Retained power-event log.

The system log only keeps a short tail of power events, so every sample the
service sees is copied here. Usage stats are then computed over the archive
instead of whatever the log still holds.
"""

import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import config
from errors import PersistenceFailure
from models import Base, PowerEvent
from usage import EventSample, PowerSource


class SampleArchive:
    def __init__(
        self,
        database_url: str = config.DATABASE_URL,
        retention_days: int = config.ARCHIVE_RETENTION_DAYS,
    ):
        self.retention_days = retention_days
        self._lock = threading.Lock()
        self.engine = create_engine(database_url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        try:
            if database_url.startswith("sqlite:///"):
                # Make sure the directory for a file database exists
                db_file = database_url[len("sqlite:///"):]
                if db_file and db_file != ":memory:":
                    Path(db_file).parent.mkdir(parents=True, exist_ok=True)
            Base.metadata.create_all(bind=self.engine)
        except (OSError, SQLAlchemyError) as e:
            raise PersistenceFailure(f"Could not open sample archive: {e}") from e

    def store(self, samples: Iterable[EventSample]) -> int:
        """Insert samples not already archived, prune old ones, return inserted count."""
        samples = list(samples)
        with self._lock:
            return self._store(samples)

    def _store(self, samples: list[EventSample]) -> int:
        db = self.SessionLocal()
        try:
            inserted = 0
            if samples:
                since = min(s.timestamp for s in samples)
                existing = {
                    (row.timestamp, row.source, row.charge_percent)
                    for row in db.query(PowerEvent).filter(PowerEvent.timestamp >= since)
                }
                for sample in samples:
                    key = (sample.timestamp, sample.source.value, sample.charge_percent)
                    if key in existing:
                        continue
                    existing.add(key)
                    db.add(PowerEvent(
                        timestamp=sample.timestamp,
                        source=sample.source.value,
                        charge_percent=sample.charge_percent,
                    ))
                    inserted += 1

            if self.retention_days > 0:
                cutoff = datetime.now() - timedelta(days=self.retention_days)
                db.query(PowerEvent).filter(PowerEvent.timestamp < cutoff).delete()

            db.commit()
            return inserted
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceFailure(f"Could not archive samples: {e}") from e
        finally:
            db.close()

    def fetch(self) -> list[EventSample]:
        """All archived samples, ascending by timestamp (insertion order for ties)."""
        db = self.SessionLocal()
        try:
            rows = db.query(PowerEvent).order_by(PowerEvent.timestamp, PowerEvent.id).all()
            return [
                EventSample(
                    timestamp=row.timestamp,
                    source=PowerSource(row.source),
                    charge_percent=row.charge_percent,
                )
                for row in rows
            ]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Could not read sample archive: {e}") from e
        finally:
            db.close()
