# main.py — TaskFlow API
# Features:
# - Request correlation IDs
# - Security headers
# - Domain error rendering with stable codes
# - WebSocket board rooms (realtime.py)
# - Health check with DB verification

import os
import uuid
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text

from database import close_db, engine, init_db
from errors import InvalidInput, TaskFlowError
from realtime import BroadcastGateway, build_backend
from telemetry import setup_telemetry

# Logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("taskflow")

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting TaskFlow...")
    await init_db()
    logger.info("Database initialized")
    await app.state.gateway.start()
    setup_telemetry(app)
    yield
    logger.info("Shutting down TaskFlow...")
    await app.state.gateway.stop()
    await close_db()


app = FastAPI(
    title="TaskFlow",
    description="Collaborative Kanban boards with realtime updates",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)
app.state.gateway = BroadcastGateway(build_backend())

# ============================================================
# CORS
# ============================================================

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173"
    ).split(",")
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# ============================================================
# MIDDLEWARE: Correlation IDs + Timing
# ============================================================

@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id

    start = time.perf_counter()
    response = await call_next(request)
    duration = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration:.4f}s"

    logger.info(
        f"{request.method} {request.url.path} → {response.status_code} "
        f"({duration:.3f}s) [rid={request_id[:8]}]"
    )
    return response


# ============================================================
# MIDDLEWARE: Security Headers
# ============================================================

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers.update(SECURITY_HEADERS)
    return response


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

def _error_response(request: Request, status_code: int, detail, code: str) -> JSONResponse:
    """Every error body has the same shape: detail, code, request_id"""
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": code, "request_id": getattr(request.state, "request_id", None)},
    )


def _field_errors(exc: RequestValidationError) -> list:
    fields = []
    for err in exc.errors():
        # ("body", "title") -> "title"; query and path params keep their prefix
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] == "body":
            loc = loc[1:]
        entry = {"field": ".".join(loc) or None, "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
        value = err.get("input")
        if isinstance(value, (str, int, float, bool)) or value is None:
            entry["input"] = value
        fields.append(entry)
    return fields


@app.exception_handler(TaskFlowError)
async def taskflow_exception_handler(request: Request, exc: TaskFlowError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return _error_response(request, exc.status_code, exc.message, exc.code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error_response(request, 422, _field_errors(exc), InvalidInput.code)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _error_response(request, 500, "Internal server error", TaskFlowError.code)


# ============================================================
# ROUTERS
# ============================================================

from routers import auth, users, boards, lists, tasks, activity, websocket_router

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(boards.router)
app.include_router(lists.router)
app.include_router(tasks.router)
app.include_router(activity.router)
app.include_router(websocket_router.router)


# ============================================================
# HEALTH
# ============================================================

@app.get("/api/health")
async def health_check():
    """Liveness plus database reachability and realtime connection counts"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.warning(f"Health check could not reach the database: {e}")
        database = f"error: {str(e)[:100]}"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": VERSION,
        "environment": os.getenv("ENVIRONMENT", "development"),
        "database": database,
        "realtime": app.state.gateway.get_stats(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 3000)),
        reload=os.getenv("ENVIRONMENT") != "production",
    )
