from __future__ import annotations


import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from pharmacy_scheduling.api.v1 import appointments, staff, time_off
from pharmacy_scheduling.core.config import settings
from pharmacy_scheduling.db.session import init_db

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.project_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("Database migrated, timezone %s", settings.default_timezone)


@app.exception_handler(OperationalError)
async def storage_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Storage unavailable for %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": {"message": "Scheduling storage is unavailable", "code": "STORAGE_UNAVAILABLE"}},
    )


@app.get("/healthz", tags=["system"])
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(appointments.router, prefix="/api/v1")
app.include_router(time_off.router, prefix="/api/v1")
app.include_router(staff.router, prefix="/api/v1")
