import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from fleetwatch.api.routes import router
from fleetwatch.core.config import settings
from fleetwatch.db import init_db

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title=settings.app_name, version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Path(settings.report_dir).mkdir(parents=True, exist_ok=True)

app.mount("/reports", StaticFiles(directory=settings.report_dir), name="reports")


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info(
        "Tracking with motion > %.1f km/h, stop >= %.0fs, trip end >= %.0fs, time windows in %s",
        settings.motion_threshold_kmh,
        settings.min_stop_seconds,
        settings.trip_end_seconds,
        settings.timezone,
    )


app.include_router(router, prefix="/api")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
