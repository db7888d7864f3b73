"""
macOS battery telemetry.

Reads live battery health from IOKit and System Information, and the
power-source history from the power management log.

Sources:
    ioreg -r -c AppleSmartBattery   - cycle count, raw capacities (mAh)
    system_profiler SPPowerDataType - health %, state of charge, charging
    battery status                  - optional charge limiter ("maintained at 80%")
    pmset -g log                    - "Using Batt"/"Using AC" events with charge

Usage:
    python battery.py status   - Show live battery health
    python battery.py log      - Show parsed power events
    python battery.py usage    - Show daily usage for the last week
"""

import re
import subprocess
import sys
from dataclasses import asdict, dataclass
from datetime import datetime

import config
from errors import MalformedSample, SourceUnavailable
from usage import EventSample, PowerSource, compute_usage

# Power-event log line, e.g.
# 2026-01-10 00:14:22 +0800 Battery   Using Batt(Charge: 80)
LOG_EVENT_RE = re.compile(r"Using (Batt|AC).*Charge")
LOG_TIMESTAMP_RE = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})")
LOG_SOURCE_RE = re.compile(r"Using (Batt|AC)")
LOG_CHARGE_RE = re.compile(r"Charge[:\s]*(\d+)")

IOREG_FIELDS = {
    "design_capacity_mah": "DesignCapacity",
    "max_capacity_mah": "AppleRawMaxCapacity",
    "current_capacity_mah": "AppleRawCurrentCapacity",
    "cycle_count": "CycleCount",
}


@dataclass(frozen=True)
class HealthReading:
    """Point-in-time battery state."""

    cycle_count: int = 0
    max_capacity: int = 0  # health %
    max_capacity_mah: int = 0  # raw hardware maximum
    health_capacity_mah: int = 0  # design capacity x health %
    design_capacity_mah: int = 0
    current_capacity_mah: int = 0
    state_of_charge: int = 0
    is_charging: bool = False
    fully_charged: bool = False
    charge_limit: int = config.DEFAULT_CHARGE_LIMIT

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# PARSERS
# =============================================================================

def parse_ioreg(output: str) -> dict:
    """Pull integer fields out of `ioreg -r -c AppleSmartBattery`."""
    fields = {}
    for name, key in IOREG_FIELDS.items():
        match = re.search(rf'"{key}"\s*=\s*(\d+)', output)
        if match:
            fields[name] = int(match.group(1))
    return fields


def parse_power_profile(output: str) -> dict:
    """Pull health, charge and charging state out of `system_profiler SPPowerDataType`."""
    fields = {}

    match = re.search(r"Maximum Capacity:\s*(\d+)%", output)
    if match:
        fields["max_capacity"] = int(match.group(1))

    match = re.search(r"State of Charge \(%\):\s*(\d+)", output)
    if match:
        fields["state_of_charge"] = int(match.group(1))

    match = re.search(r"Charging:\s*(\w+)", output)
    if match:
        fields["is_charging"] = match.group(1).lower() == "yes"

    match = re.search(r"Fully Charged:\s*(\w+)", output)
    if match:
        fields["fully_charged"] = match.group(1).lower() == "yes"

    return fields


def parse_charge_limit(output: str) -> int:
    """Charge limit from `battery status`, or the default when not limited."""
    match = re.search(r"maintained at (\d+)%", output, re.IGNORECASE)
    if match:
        return int(match.group(1))
    return config.DEFAULT_CHARGE_LIMIT


def build_reading(ioreg_output: str, profile_output: str, charge_limit: int) -> HealthReading:
    fields = parse_ioreg(ioreg_output)
    fields.update(parse_power_profile(profile_output))
    if not fields:
        raise SourceUnavailable("No battery fields found in ioreg or system_profiler output")

    design = fields.get("design_capacity_mah", 0)
    health = fields.get("max_capacity", 0)
    return HealthReading(
        health_capacity_mah=int(round(design * health / 100)),
        charge_limit=charge_limit,
        **fields,
    )


def parse_log_line(line: str) -> EventSample:
    """Parse one power-event log line; raise MalformedSample if it isn't one."""
    ts_match = LOG_TIMESTAMP_RE.match(line)
    source_match = LOG_SOURCE_RE.search(line)
    charge_match = LOG_CHARGE_RE.search(line)
    if not (ts_match and source_match and charge_match):
        raise MalformedSample(f"Not a power event: {line.strip()!r}")

    try:
        # Wall-clock time as stamped; the day bucket must match the log's own date
        timestamp = datetime.strptime(ts_match.group(1), "%Y-%m-%d %H:%M:%S")
    except ValueError as e:
        raise MalformedSample(f"Bad timestamp in {line.strip()!r}: {e}") from e

    charge = int(charge_match.group(1))
    if not 0 <= charge <= 100:
        raise MalformedSample(f"Charge out of range in {line.strip()!r}")

    return EventSample(
        timestamp=timestamp,
        source=PowerSource(source_match.group(1)),
        charge_percent=charge,
    )


def parse_log(lines) -> list[EventSample]:
    """Parse power-event lines in order, skipping the ones that don't parse."""
    samples = []
    skipped = 0
    for line in lines:
        if not line.strip():
            continue
        try:
            samples.append(parse_log_line(line))
        except MalformedSample:
            skipped += 1
    if skipped:
        print(f"[battery] skipped {skipped} malformed log line(s)")
    return samples


# =============================================================================
# TELEMETRY SOURCE
# =============================================================================

class MacBattery:
    """Battery telemetry from macOS command-line tools."""

    def __init__(
        self,
        timeout: float = config.COMMAND_TIMEOUT_SEC,
        tail_lines: int = config.LOG_TAIL_LINES,
    ):
        self.timeout = timeout
        self.tail_lines = tail_lines

    def _run(self, args: list[str]) -> str:
        """Run a command and return stdout, raising SourceUnavailable on any failure."""
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise SourceUnavailable(f"{args[0]} not found - is this macOS?") from e
        except subprocess.TimeoutExpired as e:
            raise SourceUnavailable(f"{args[0]} timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise SourceUnavailable(
                f"{' '.join(args)} exited {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout

    def read_charge_limit(self) -> int:
        """Charge limit from the `battery` limiter; no limiter means no limit."""
        try:
            return parse_charge_limit(self._run(["battery", "status"]))
        except SourceUnavailable:
            return config.DEFAULT_CHARGE_LIMIT

    def read_live_health(self) -> HealthReading:
        ioreg_output = self._run(["ioreg", "-r", "-c", "AppleSmartBattery"])
        profile_output = self._run(["system_profiler", "SPPowerDataType"])
        return build_reading(ioreg_output, profile_output, self.read_charge_limit())

    def read_raw_log(self) -> list[EventSample]:
        output = self._run(["pmset", "-g", "log"])
        events = [line for line in output.splitlines() if LOG_EVENT_RE.search(line)]
        return parse_log(events[-self.tail_lines:])


# =============================================================================
# CLI
# =============================================================================

def print_status(reading: HealthReading):
    if reading.fully_charged:
        state = "Fully charged"
    elif reading.is_charging:
        state = "Charging"
    else:
        state = "On battery"

    print(f"\n{'='*40}")
    print(f"  Battery Status")
    print(f"{'='*40}")
    print(f"  Charge:        {reading.state_of_charge}% ({state})")
    print(f"  Charge Limit:  {reading.charge_limit}%")
    print(f"  Cycles:        {reading.cycle_count}")
    print(f"  Health:        {reading.max_capacity}%")
    print(f"  Design:        {reading.design_capacity_mah} mAh")
    print(f"  Max (raw):     {reading.max_capacity_mah} mAh")
    print(f"  Max (health):  {reading.health_capacity_mah} mAh")
    print(f"{'='*40}\n")


def main():
    battery = MacBattery()

    if len(sys.argv) < 2:
        print("Usage:")
        print("  python battery.py status   - Show live battery health")
        print("  python battery.py log      - Show parsed power events")
        print("  python battery.py usage    - Show daily usage for the last week")
        return

    cmd = sys.argv[1].lower()

    try:
        if cmd == "status":
            print_status(battery.read_live_health())

        elif cmd == "log":
            for sample in battery.read_raw_log():
                print(f"  {sample.timestamp}  {sample.source.value:<4}  {sample.charge_percent}%")

        elif cmd == "usage":
            for day in compute_usage(battery.read_raw_log()):
                print(f"  {day.date}  battery {day.battery_minutes:>4} min  "
                      f"AC {day.ac_minutes:>4} min  used {day.charge_used}%")

        else:
            print(f"Unknown command: {cmd}")
            print("Use 'status', 'log', or 'usage'")
    except SourceUnavailable as e:
        print(f"ERROR: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
