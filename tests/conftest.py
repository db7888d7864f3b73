from datetime import datetime, timezone

import pytest

from battery import HealthReading
from errors import SourceUnavailable
from ledger import HistoryLedger
from usage import EventSample, PowerSource


def sample(ts: str, source: str, charge: int) -> EventSample:
    """EventSample from a 'YYYY-MM-DD HH:MM[:SS]' string and 'Batt'/'AC'."""
    return EventSample(
        timestamp=datetime.fromisoformat(ts),
        source=PowerSource(source),
        charge_percent=charge,
    )


class FakeSource:
    """In-memory telemetry source."""

    def __init__(self, reading=None, samples=None, error=None):
        self.reading = reading or HealthReading(
            cycle_count=112,
            max_capacity=91,
            max_capacity_mah=4790,
            health_capacity_mah=4793,
            design_capacity_mah=5267,
            current_capacity_mah=3100,
            state_of_charge=65,
            is_charging=False,
            fully_charged=False,
            charge_limit=80,
        )
        self.samples = list(samples or [])
        self.error = error
        self.log_reads = 0

    def read_live_health(self) -> HealthReading:
        if self.error:
            raise SourceUnavailable(self.error)
        return self.reading

    def read_raw_log(self) -> list[EventSample]:
        if self.error:
            raise SourceUnavailable(self.error)
        self.log_reads += 1
        return list(self.samples)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def ledger(tmp_path):
    return HistoryLedger(tmp_path / "history.json")


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2025, 3, 14, 9, 30, 0, tzinfo=timezone.utc)
