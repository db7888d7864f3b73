"""Runtime configuration, read from the environment (and .env)."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Durable state
DATA_DIR = Path(os.getenv("BATTERY_DATA_DIR", "./data"))
HISTORY_FILE = DATA_DIR / "history.json"

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'samples.db'}")
# SQLAlchemy only accepts the postgresql:// scheme
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Usage accounting policy
SLEEP_GAP_MINUTES = float(os.getenv("SLEEP_GAP_MINUTES", "120"))  # intervals at/above this are sleep
USAGE_WINDOW_DAYS = int(os.getenv("USAGE_WINDOW_DAYS", "7"))

# Telemetry source
LOG_TAIL_LINES = int(os.getenv("LOG_TAIL_LINES", "500"))
COMMAND_TIMEOUT_SEC = float(os.getenv("COMMAND_TIMEOUT_SEC", "15"))
DEFAULT_CHARGE_LIMIT = 100

# Sample archive
POLL_INTERVAL_SEC = int(os.getenv("POLL_INTERVAL_SEC", "300"))  # 0 disables polling
ARCHIVE_RETENTION_DAYS = int(os.getenv("ARCHIVE_RETENTION_DAYS", "30"))
