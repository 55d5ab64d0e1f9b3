from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .routes import router as v1_router, get_engine
from ..core.errors import PortError
from ..core.engine import PortEngine
from ..db import init_db
from ..settings import settings

# ---------------- Logging ----------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("port-allocator")

API_VERSION = "1.0.0"

# ---------- App ----------
app = FastAPI(
    title="Port Resource Allocation Engine",
    version=API_VERSION,
    description="Berth matching, cargo-operation coordination and capacity bookkeeping for a seaport",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.include_router(v1_router)

# ----- CORS -----
allow_origins = settings.origins
allow_all = (len(allow_origins) == 1 and allow_origins[0] == "*")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    # Browsers disallow credentials with "*"; use regex echo when fully open.
    allow_credentials=not allow_all,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=".*" if allow_all else None,
)


# ----- Errors -----
@app.exception_handler(PortError)
def _port_error(request: Request, exc: PortError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
def _unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "internal_error", "detail": "request failed"})


# ----- Startup -----
@app.on_event("startup")
def _startup():
    """Create the schema on startup."""
    try:
        init_db()
        logger.info("Startup complete, DB initialized.")
    except Exception:
        logger.exception("DB init failed during startup; continuing without blocking app.")


# ----- System -----
@app.get("/health", tags=["System"])
def health(engine: PortEngine = Depends(get_engine)) -> Dict[str, Any]:
    db_ok = True
    try:
        with engine.session_factory() as db:
            db.execute(text("SELECT 1")).scalar()
    except Exception:
        logger.warning("Health check could not reach the database", exc_info=True)
        db_ok = False
    return {
        "ok": True,
        "version": API_VERSION,
        "db_ok": db_ok,
        "logical_time": engine.clock.now(),
        "features": [
            "berth_matching",
            "schedules",
            "cargo_operations",
            "equipment_allocation",
            "capacity_metrics",
        ],
    }
