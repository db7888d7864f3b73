"""Battery health and usage operations exposed over the API."""

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

import config
from archive import SampleArchive
from battery import HealthReading
from errors import PersistenceFailure
from ledger import HealthSnapshot, HistoryLedger
from usage import DailyUsage, EventSample, compute_usage


class TelemetrySource(Protocol):
    def read_live_health(self) -> HealthReading: ...

    def read_raw_log(self) -> list[EventSample]: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def snapshot_from_reading(reading: HealthReading, captured_at: datetime) -> HealthSnapshot:
    """Today's ledger entry for a live reading, keyed by the capture date."""
    return HealthSnapshot(
        date=captured_at.date(),
        cycle_count=reading.cycle_count,
        max_capacity=reading.max_capacity,
        max_capacity_mah=reading.health_capacity_mah,
        real_capacity_mah=reading.max_capacity_mah,
        design_capacity_mah=reading.design_capacity_mah,
        state_of_charge=reading.state_of_charge,
        timestamp=captured_at.isoformat(),
    )


class BatteryService:
    def __init__(
        self,
        source: TelemetrySource,
        ledger: HistoryLedger,
        archive: Optional[SampleArchive] = None,
        window_days: int = config.USAGE_WINDOW_DAYS,
        sleep_gap_minutes: float = config.SLEEP_GAP_MINUTES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = source
        self.ledger = ledger
        self.archive = archive
        self.window_days = window_days
        self.sleep_gap_minutes = sleep_gap_minutes
        self.clock = clock

    def get_current_health(self) -> HealthReading:
        return self.source.read_live_health()

    def record_today(self) -> HealthSnapshot:
        """Capture a live reading and store it as today's snapshot."""
        reading = self.source.read_live_health()
        return self.ledger.upsert(snapshot_from_reading(reading, self.clock()))

    def get_history(self) -> list[HealthSnapshot]:
        return self.ledger.all()

    def archive_samples(self) -> int:
        """Copy the current log tail into the archive; returns samples added."""
        if self.archive is None:
            return 0
        return self.archive.store(self.source.read_raw_log())

    def get_usage_stats(self, window_days: Optional[int] = None) -> list[DailyUsage]:
        """Daily usage over the retained log, most recent `window_days` days."""
        samples = self.source.read_raw_log()
        if self.archive is not None:
            try:
                self.archive.store(samples)
                samples = self.archive.fetch()
            except PersistenceFailure as e:
                print(f"[archive] {e.message}; using the current log only")

        return compute_usage(
            samples,
            window_days=self.window_days if window_days is None else window_days,
            sleep_gap_minutes=self.sleep_gap_minutes,
        )
