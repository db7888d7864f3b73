"""
Daily battery health history.

One snapshot per calendar date, kept in a single JSON document:

    {"records": [{"date": "2025-01-01", "cycle_count": 112, ...}, ...]}

Records are always sorted ascending by date. Writes go to a temporary file
that replaces the document, so readers never see a partial write.
"""

import json
import os
import tempfile
import threading
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path

import config
from errors import PersistenceFailure

COLLECTION_KEY = "records"


@dataclass(frozen=True)
class HealthSnapshot:
    date: date
    cycle_count: int
    max_capacity: int  # vendor health %
    max_capacity_mah: int  # design capacity x health %
    real_capacity_mah: int  # raw hardware-reported maximum
    design_capacity_mah: int
    state_of_charge: int
    timestamp: str  # capture instant, ISO-8601

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "HealthSnapshot":
        return cls(
            date=date.fromisoformat(data["date"]),
            cycle_count=int(data["cycle_count"]),
            max_capacity=int(data["max_capacity"]),
            max_capacity_mah=int(data["max_capacity_mah"]),
            real_capacity_mah=int(data["real_capacity_mah"]),
            design_capacity_mah=int(data["design_capacity_mah"]),
            state_of_charge=int(data["state_of_charge"]),
            timestamp=str(data["timestamp"]),
        )


class HistoryLedger:
    """Date-keyed snapshot store with upsert semantics."""

    def __init__(self, path: Path = config.HISTORY_FILE):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._records: list[HealthSnapshot] = self.load()

    def load(self) -> list[HealthSnapshot]:
        """
        Read the document, creating an empty one if none exists.

        An unreadable document leaves the ledger empty in memory rather than
        failing startup.
        """
        if not self.path.exists():
            try:
                self.save([])
            except PersistenceFailure as e:
                print(f"[ledger] could not initialize {self.path}: {e.message}")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
            records = [HealthSnapshot.from_dict(r) for r in document[COLLECTION_KEY]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            print(f"[ledger] unreadable history at {self.path}, starting empty: {e}")
            return []

        records.sort(key=lambda r: r.date)
        return records

    def save(self, records: list[HealthSnapshot]) -> None:
        """Atomically replace the document with `records`."""
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({COLLECTION_KEY: [r.to_dict() for r in records]}, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceFailure(f"Could not write history to {self.path}: {e}") from e

    def all(self) -> list[HealthSnapshot]:
        """All snapshots, ascending by date."""
        return list(self._records)

    def upsert(self, snapshot: HealthSnapshot) -> HealthSnapshot:
        """
        Insert or replace the snapshot for `snapshot.date` and persist.

        The in-memory records only change once the write has succeeded.
        """
        with self._lock:
            records = list(self._records)
            for i, existing in enumerate(records):
                if existing.date == snapshot.date:
                    records[i] = snapshot
                    break
            else:
                records.append(snapshot)

            # Late captures (a missed day recorded afterwards) can arrive out of order
            records.sort(key=lambda r: r.date)

            self.save(records)
            self._records = records
            return snapshot
