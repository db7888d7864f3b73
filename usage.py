"""
Daily battery vs. external-power usage from the power-event log.

Each event sample says which source the machine was running on and the
charge level at that moment. Consecutive samples within one calendar day
form an interval that is charged to the source of the earlier sample.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Iterable

import config


class PowerSource(str, Enum):
    """Power source as written in the power-event log."""

    BATTERY = "Batt"
    AC = "AC"


@dataclass(frozen=True)
class EventSample:
    timestamp: datetime
    source: PowerSource
    charge_percent: int

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "source": self.source.value,
            "charge_percent": self.charge_percent,
        }


@dataclass(frozen=True)
class DailyUsage:
    date: date
    battery_minutes: int
    ac_minutes: int
    charge_used: int

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "battery_minutes": self.battery_minutes,
            "ac_minutes": self.ac_minutes,
            "charge_used": self.charge_used,
        }


# =============================================================================
# BUCKETING HELPERS
# =============================================================================

def local_date(timestamp: datetime) -> date:
    """Calendar date as stamped by the log (wall-clock, not UTC-normalized)."""
    return timestamp.date()


def round_minutes(minutes: float) -> int:
    """Nearest whole minute, halves rounding up."""
    return int(math.floor(minutes + 0.5))


def bucket_by_day(
    samples: Iterable[EventSample],
    day_of: Callable[[datetime], date] = local_date,
) -> dict[date, list[EventSample]]:
    """Group samples by calendar day, each day ordered by timestamp."""
    buckets = defaultdict(list)
    for sample in samples:
        buckets[day_of(sample.timestamp)].append(sample)

    # Stable sort keeps log order for samples stamped in the same second
    for day_samples in buckets.values():
        day_samples.sort(key=lambda s: s.timestamp)
    return dict(buckets)


# =============================================================================
# USAGE CALCULATIONS
# =============================================================================

def summarize_day(
    day: date,
    samples: list[EventSample],
    sleep_gap_minutes: float = config.SLEEP_GAP_MINUTES,
) -> DailyUsage:
    """
    Total battery time, AC time and battery drain for one day's samples.

    Args:
        day: Calendar date of the bucket
        samples: That day's samples, ascending by timestamp
        sleep_gap_minutes: Intervals at or above this length are treated as
            sleep and count toward neither source

    Returns:
        DailyUsage with minutes rounded to the nearest whole minute
    """
    battery_minutes = 0.0
    ac_minutes = 0.0
    charge_used = 0

    for prev, curr in zip(samples, samples[1:]):
        minutes = (curr.timestamp - prev.timestamp).total_seconds() / 60
        if minutes <= 0 or minutes >= sleep_gap_minutes:
            continue

        if prev.source == PowerSource.BATTERY:
            battery_minutes += minutes
            # Only drain counts; a rising reading on battery is noise
            drain = prev.charge_percent - curr.charge_percent
            if drain > 0:
                charge_used += drain
        else:
            ac_minutes += minutes

    return DailyUsage(
        date=day,
        battery_minutes=round_minutes(battery_minutes),
        ac_minutes=round_minutes(ac_minutes),
        charge_used=charge_used,
    )


def compute_usage(
    samples: Iterable[EventSample],
    window_days: int = config.USAGE_WINDOW_DAYS,
    sleep_gap_minutes: float = config.SLEEP_GAP_MINUTES,
    day_of: Callable[[datetime], date] = local_date,
) -> list[DailyUsage]:
    """
    Per-day usage for the most recent `window_days` days that have samples.

    Days without samples are never synthesized. An interval only exists
    between two samples of the same day, so the stretch between the last
    sample of one day and the first sample of the next is not counted.
    """
    if window_days <= 0:
        return []

    buckets = bucket_by_day(samples, day_of)
    summaries = [
        summarize_day(day, buckets[day], sleep_gap_minutes)
        for day in sorted(buckets)
    ]
    return summaries[-window_days:]
