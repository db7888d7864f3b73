import threading
from datetime import date

import pytest

from archive import SampleArchive
from conftest import FakeSource, sample
from errors import PersistenceFailure, SourceUnavailable
from service import BatteryService

LOG = [
    sample("2025-01-01 10:00", "Batt", 80),
    sample("2025-01-01 10:30", "Batt", 75),
    sample("2025-01-01 11:00", "AC", 75),
    sample("2025-01-02 09:00", "AC", 60),
    sample("2025-01-02 09:40", "Batt", 100),
    sample("2025-01-02 10:00", "Batt", 97),
]


def test_current_health_passes_through(source, ledger):
    svc = BatteryService(source, ledger)

    assert svc.get_current_health() is source.reading


def test_record_today_stores_snapshot(source, ledger, fixed_clock):
    svc = BatteryService(source, ledger, clock=fixed_clock)

    snap = svc.record_today()

    assert snap.date == date(2025, 3, 14)
    assert snap.timestamp == "2025-03-14T09:30:00+00:00"
    assert snap.cycle_count == 112
    assert snap.max_capacity == 91
    # Health-adjusted vs. raw hardware capacity
    assert snap.max_capacity_mah == 4793
    assert snap.real_capacity_mah == 4790
    assert snap.design_capacity_mah == 5267
    assert snap.state_of_charge == 65
    assert svc.get_history() == [snap]


def test_record_today_twice_keeps_one_entry(source, ledger, fixed_clock):
    svc = BatteryService(source, ledger, clock=fixed_clock)

    svc.record_today()
    svc.record_today()

    assert len(svc.get_history()) == 1


def test_record_today_source_failure(ledger):
    svc = BatteryService(FakeSource(error="ioreg not found"), ledger)

    with pytest.raises(SourceUnavailable):
        svc.record_today()
    assert svc.get_history() == []


def test_usage_stats_from_log(ledger):
    svc = BatteryService(FakeSource(samples=LOG), ledger)

    stats = svc.get_usage_stats()

    assert [s.to_dict() for s in stats] == [
        {"date": "2025-01-01", "battery_minutes": 60, "ac_minutes": 0, "charge_used": 5},
        {"date": "2025-01-02", "battery_minutes": 20, "ac_minutes": 40, "charge_used": 3},
    ]


def test_usage_stats_window(ledger):
    svc = BatteryService(FakeSource(samples=LOG), ledger, window_days=1)

    assert [s.date for s in svc.get_usage_stats()] == [date(2025, 1, 2)]
    assert len(svc.get_usage_stats(window_days=7)) == 2


def test_usage_stats_source_failure(ledger):
    svc = BatteryService(FakeSource(error="pmset timed out"), ledger)

    with pytest.raises(SourceUnavailable):
        svc.get_usage_stats()


def test_usage_stats_keeps_rotated_samples(ledger, tmp_path):
    archive = SampleArchive(f"sqlite:///{tmp_path / 'samples.db'}", retention_days=0)
    source = FakeSource(samples=LOG[:3])
    svc = BatteryService(source, ledger, archive=archive)
    svc.get_usage_stats()

    # The log rotated: day one is gone from the source
    source.samples = LOG[3:]
    stats = svc.get_usage_stats()

    assert [s.date for s in stats] == [date(2025, 1, 1), date(2025, 1, 2)]
    assert stats[0].charge_used == 5


def test_archive_samples(ledger, tmp_path):
    archive = SampleArchive(f"sqlite:///{tmp_path / 'samples.db'}", retention_days=0)
    svc = BatteryService(FakeSource(samples=LOG), ledger, archive=archive)

    assert svc.archive_samples() == len(LOG)
    assert svc.archive_samples() == 0


def test_archive_samples_without_archive(source, ledger):
    svc = BatteryService(source, ledger)

    assert svc.archive_samples() == 0
    assert source.log_reads == 0


def test_poll_and_usage_request_share_archive(ledger, tmp_path):
    archive = SampleArchive(f"sqlite:///{tmp_path / 'samples.db'}", retention_days=0)
    svc = BatteryService(FakeSource(samples=LOG), ledger, archive=archive)
    barrier = threading.Barrier(4)
    results = []
    errors = []

    def run(op):
        barrier.wait()
        try:
            results.append(op())
        except Exception as e:
            errors.append(e)

    ops = [svc.archive_samples, svc.get_usage_stats, svc.archive_samples, svc.get_usage_stats]
    threads = [threading.Thread(target=run, args=(op,)) for op in ops]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(archive.fetch()) == len(LOG)
    stats = [r for r in results if isinstance(r, list)]
    assert all([s.date for s in r] == [date(2025, 1, 1), date(2025, 1, 2)] for r in stats)


class BrokenArchive:
    def store(self, samples):
        raise PersistenceFailure("database is locked")

    def fetch(self):
        raise PersistenceFailure("database is locked")


def test_usage_stats_fall_back_to_log_when_archive_fails(ledger):
    svc = BatteryService(FakeSource(samples=LOG), ledger, archive=BrokenArchive())

    stats = svc.get_usage_stats()

    assert [s.date for s in stats] == [date(2025, 1, 1), date(2025, 1, 2)]
    assert stats[0].battery_minutes == 60


def test_usage_stats_window_of_zero(ledger):
    svc = BatteryService(FakeSource(samples=LOG), ledger)

    assert svc.get_usage_stats(window_days=0) == []
