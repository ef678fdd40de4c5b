from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from labbooking.core.errors import BookingError, ErrorKind
from labbooking.infrastructure.config import settings
from labbooking.infrastructure.database import Base, SessionLocal, engine
from labbooking.infrastructure.log_config import configure_logging
from labbooking.infrastructure.seed import load_catalog_file, seed_catalog
from labbooking.presentation.routers import manager_router, router

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.VALIDATION_FAILED: 422,
}

configure_logging()
app = FastAPI(title="Lab Booking", version="1.0.0")


@app.exception_handler(BookingError)
def _booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 400),
        content={"code": exc.code, "detail": exc.message},
    )


@app.on_event("startup")
def _seed_catalog_on_startup() -> None:
    """
    On startup ensure tables exist and load the lab catalog when a seed file is configured
    """
    if settings.catalog_seed_path is None:
        return
    db = SessionLocal()
    try:
        seed_catalog(db, load_catalog_file(settings.catalog_seed_path))
    finally:
        db.close()


Base.metadata.create_all(bind=engine)
app.include_router(router)
app.include_router(manager_router)
