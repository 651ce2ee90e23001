import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from measure_tracker.core.settings import settings, validate_settings
from measure_tracker.db.session import engine
from measure_tracker.models import Base
from measure_tracker.routers.measure_import import router as measure_import_router
from measure_tracker.services.measure_import.preview_store import preview_store

app = FastAPI(title="Measure Tracker API", version="0.1.0")
logger = logging.getLogger("measure_tracker.startup")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    logging.basicConfig(level=settings.log_level.upper())
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("Import preview TTL set to %s minutes.", settings.import_preview_ttl_minutes)


@app.middleware("http")
async def expire_previews(request: Request, call_next):
    preview_store.cleanup_expired()
    return await call_next(request)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(measure_import_router)
