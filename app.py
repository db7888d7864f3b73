"""
Battery health monitor web app.

Serves live battery health, a daily history of health snapshots, and daily
battery vs. AC usage derived from the power-event log. Optionally polls the
log in the background so usage survives log rotation.

Run with:
    uvicorn app:app --port 3000
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import HTMLResponse, FileResponse, JSONResponse

import config
from archive import SampleArchive
from battery import MacBattery
from errors import BatteryError
from ledger import COLLECTION_KEY, HistoryLedger
from service import BatteryService

# Dashboard build directory
STATIC_DIR = Path(__file__).parent / "static"

# Global service instance (built on startup)
service: BatteryService | None = None
polling_task = None


def build_service() -> BatteryService:
    """Wire the service from config."""
    archive = None
    if config.DATABASE_URL:
        try:
            archive = SampleArchive(config.DATABASE_URL)
        except BatteryError as e:
            print(f"[archive] disabled: {e.message}")

    return BatteryService(
        source=MacBattery(),
        ledger=HistoryLedger(config.HISTORY_FILE),
        archive=archive,
    )


def get_service() -> BatteryService:
    return service


async def poll_power_log(svc: BatteryService, interval_sec: int):
    """Background task to copy the power-event log into the archive."""
    while True:
        try:
            added = await asyncio.to_thread(svc.archive_samples)
            if added:
                print(f"[{datetime.now()}] [poll] archived {added} power event(s)")
        except Exception as e:
            print(f"[{datetime.now()}] [poll] error: {e}")

        await asyncio.sleep(interval_sec)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service and start polling on startup, cleanup on shutdown."""
    global service, polling_task

    service = build_service()
    print(f"History: {config.HISTORY_FILE} ({len(service.get_history())} records)")

    if service.archive is not None and config.POLL_INTERVAL_SEC > 0:
        polling_task = asyncio.create_task(poll_power_log(service, config.POLL_INTERVAL_SEC))
        print(f"Started polling power log every {config.POLL_INTERVAL_SEC}s")

    yield

    if polling_task:
        polling_task.cancel()
        try:
            await polling_task
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Battery Monitor", lifespan=lifespan)


@app.exception_handler(BatteryError)
async def battery_error_handler(request: Request, exc: BatteryError):
    print(f"[api] {type(exc).__name__}: {exc.message}")
    return exc.to_response()


@app.exception_handler(Exception)
async def generic_error_handler(request: Request, exc: Exception):
    print(f"[api] unhandled error: {exc!r}")
    return JSONResponse(status_code=500, content={"error": "An unexpected error occurred"})


# =============================================================================
# FRONTEND ROUTES
# =============================================================================

@app.get("/", response_class=HTMLResponse)
async def dashboard():
    """Serve the dashboard."""
    index_path = STATIC_DIR / "index.html"
    if index_path.exists():
        return FileResponse(index_path)
    return HTMLResponse("<h1>Dashboard not installed</h1><p>Put index.html in static/</p>")


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/api/battery")
def api_battery(svc: BatteryService = Depends(get_service)):
    """Live battery health."""
    return svc.get_current_health().to_dict()


@app.get("/api/history")
def api_history(svc: BatteryService = Depends(get_service)):
    """All daily health snapshots, oldest first."""
    return {COLLECTION_KEY: [r.to_dict() for r in svc.get_history()]}


@app.post("/api/record")
def api_record(svc: BatteryService = Depends(get_service)):
    """Store today's health snapshot, replacing any earlier one from today."""
    return svc.record_today().to_dict()


@app.get("/api/usage-stats")
def api_usage_stats(
    days: int = Query(default=config.USAGE_WINDOW_DAYS, ge=1, le=31),
    svc: BatteryService = Depends(get_service),
):
    """Daily battery/AC minutes and charge used for the most recent days."""
    return [d.to_dict() for d in svc.get_usage_stats(window_days=days)]
