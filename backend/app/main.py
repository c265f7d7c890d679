"""
Nursing Workforce Dashboard API
FastAPI backend with async PostgreSQL: ward configuration, shift entry,
workload / productivity scoring, dashboard aggregation and period exports.
"""
import os
import time
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware

# Load .env in dev (no-op when the file is missing)
load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("nursing-api")

_PROCESS_START = time.monotonic()

if not os.getenv("DATABASE_URL"):
    logger.warning("DATABASE_URL not set, entry and dashboard routes need a database")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from app.db import init_db
        await init_db()
    except Exception as e:
        logger.warning(f"Table init warning (OK if using Alembic): {e}")
    yield
    from app.db import engine
    await engine.dispose()


app = FastAPI(
    title="Nursing Workforce Dashboard API",
    version="1.0.0",
    description="Nursing workload, HPPD and productivity tracking for IPD and OPD wards",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# ---------------------------------------------------------------------------
# CORS: allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from app.api.ward_routes import router as ward_router
from app.api.ipd_routes import router as ipd_router
from app.api.opd_routes import router as opd_router
from app.api.dashboard_routes import router as dashboard_router
from app.api.his_routes import router as his_router
from app.api.export_routes import router as export_router
from app.api.settings_routes import router as settings_router
from app.api.sheet_routes import router as sheet_router

app.include_router(ward_router)
app.include_router(ipd_router)
app.include_router(opd_router)
app.include_router(dashboard_router)
app.include_router(his_router)
app.include_router(export_router)
app.include_router(settings_router)
app.include_router(sheet_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": "1.0.0",
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
