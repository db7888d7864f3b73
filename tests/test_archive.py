import threading
from datetime import datetime, timedelta

from archive import SampleArchive
from conftest import sample
from usage import EventSample, PowerSource


def _archive(tmp_path, retention_days=0):
    return SampleArchive(f"sqlite:///{tmp_path / 'db' / 'samples.db'}", retention_days=retention_days)


def test_store_and_fetch_in_timestamp_order(tmp_path):
    archive = _archive(tmp_path)
    samples = [
        sample("2025-01-01 10:30", "Batt", 75),
        sample("2025-01-01 10:00", "Batt", 80),
        sample("2025-01-01 11:00", "AC", 75),
    ]

    assert archive.store(samples) == 3

    fetched = archive.fetch()
    assert [s.timestamp for s in fetched] == sorted(s.timestamp for s in samples)
    assert fetched[2].source == PowerSource.AC


def test_store_skips_samples_already_archived(tmp_path):
    archive = _archive(tmp_path)
    first = [sample("2025-01-01 10:00", "Batt", 80), sample("2025-01-01 10:30", "Batt", 75)]
    overlapping = first[1:] + [sample("2025-01-01 11:00", "AC", 75)]

    archive.store(first)
    added = archive.store(overlapping)

    assert added == 1
    assert len(archive.fetch()) == 3


def test_store_dedupes_within_one_batch(tmp_path):
    archive = _archive(tmp_path)
    dup = sample("2025-01-01 10:00", "Batt", 80)

    assert archive.store([dup, dup]) == 1


def test_same_second_different_events_kept_in_order(tmp_path):
    archive = _archive(tmp_path)
    samples = [sample("2025-01-01 10:00", "AC", 80), sample("2025-01-01 10:00", "Batt", 80)]

    archive.store(samples)

    assert [s.source for s in archive.fetch()] == [PowerSource.AC, PowerSource.BATTERY]


def test_old_samples_pruned(tmp_path):
    archive = _archive(tmp_path, retention_days=30)
    now = datetime.now().replace(microsecond=0)
    recent = EventSample(timestamp=now - timedelta(days=1), source=PowerSource.BATTERY, charge_percent=50)
    stale = EventSample(timestamp=now - timedelta(days=45), source=PowerSource.BATTERY, charge_percent=90)

    archive.store([stale, recent])

    assert archive.fetch() == [recent]


def test_store_nothing(tmp_path):
    archive = _archive(tmp_path)

    assert archive.store([]) == 0
    assert archive.fetch() == []


def test_concurrent_stores_of_same_tail(tmp_path):
    archive = _archive(tmp_path)
    start = datetime(2025, 1, 1, 8, 0)
    samples = [
        EventSample(timestamp=start + timedelta(minutes=5 * i), source=PowerSource.BATTERY, charge_percent=100 - i)
        for i in range(60)
    ]
    barrier = threading.Barrier(2)
    added = []
    errors = []

    def store():
        barrier.wait()
        try:
            added.append(archive.store(samples))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=store) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(added) == [0, 60]
    assert archive.fetch() == samples
