"""FastAPI application entry point."""
import os

# Force UTC before any module caches timezone information
os.environ['TZ'] = 'UTC'

import asyncio
import time

if hasattr(time, "tzset"):
    time.tzset()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextlib import asynccontextmanager

from rankmatch.config import get_settings
from rankmatch.version import APP_VERSION
from rankmatch.routers import health, matches, matchmaking, player
from rankmatch.tasks.reservation_maintenance import schedule_periodic_maintenance
from rankmatch.utils.exceptions import (
    AlreadySettledError,
    DuplicateReservationError,
    InvalidTransitionError,
    MatchmakingError,
    MatchNotFoundError,
    OperationFailedError,
    ParticipantNotFoundError,
)

logs_dir = Path("logs")
logs_dir.mkdir(exist_ok=True)

log_file = logs_dir / "rankmatch.log"
sql_log_file = logs_dir / "rankmatch_sql.log"
api_log_file = logs_dir / "rankmatch_api.log"

# General logs (1MB max size, keep 5 backup files)
rotating_handler = RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=5, encoding='utf-8')
rotating_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

sql_rotating_handler = RotatingFileHandler(sql_log_file, maxBytes=1024 * 1024, backupCount=5, encoding='utf-8')
sql_rotating_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

# API request logs (2MB max size, keep 15 backup files)
api_rotating_handler = RotatingFileHandler(api_log_file, maxBytes=2 * 1024 * 1024, backupCount=15, encoding='utf-8')
api_rotating_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

# force=True overrides any configuration installed by uvicorn
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        rotating_handler,
    ],
    force=True,
)

logger = logging.getLogger(__name__)

api_logger = logging.getLogger("rankmatch.api")
api_logger.handlers.clear()
api_logger.addHandler(api_rotating_handler)
api_logger.setLevel(logging.INFO)
api_logger.propagate = False

uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.setLevel(logging.INFO)
if rotating_handler not in uvicorn_access_logger.handlers:
    uvicorn_access_logger.addHandler(rotating_handler)

sqlalchemy_logger = logging.getLogger("sqlalchemy.engine.Engine")
sqlalchemy_logger.handlers.clear()
sqlalchemy_logger.addHandler(sql_rotating_handler)
sqlalchemy_logger.setLevel(logging.INFO)
sqlalchemy_logger.propagate = False


class SQLTransactionFilter(logging.Filter):
    def filter(self, record):
        if record.levelno == logging.INFO and hasattr(record, 'getMessage'):
            message = record.getMessage()

            if any(keyword in message for keyword in ['ROLLBACK', 'BEGIN', 'COMMIT', 'generated in']):
                return False

            # Collapse multi-line statements onto one line
            if any(kw in message for kw in ['SELECT', 'UPDATE', 'DELETE', 'INSERT']):
                record.msg = ' '.join(message.split())
                record.args = ()
        return True


sqlalchemy_logger.addFilter(SQLTransactionFilter())

settings = get_settings()

NOT_FOUND_ERRORS = (ParticipantNotFoundError, MatchNotFoundError)
CONFLICT_ERRORS = (AlreadySettledError, InvalidTransitionError, DuplicateReservationError)


def status_code_for(exc: MatchmakingError) -> int:
    if isinstance(exc, NOT_FOUND_ERRORS):
        return 404
    if isinstance(exc, CONFLICT_ERRORS):
        return 409
    if isinstance(exc, OperationFailedError):
        return 503
    return 400


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Manage application startup and shutdown tasks."""
    logger.info("=" * 60)
    logger.info("Rankmatch API Starting")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Database: {settings.database_url.split('@')[-1] if '@' in settings.database_url else 'SQLite'}")
    logger.info("=" * 60)

    maintenance_task = None
    try:
        maintenance_task = asyncio.create_task(schedule_periodic_maintenance())
        logger.info(
            f"Reservation maintenance task started (runs every {settings.reservation_sweep_interval_seconds}s)"
        )
    except Exception as e:
        logger.error(f"Failed to start reservation maintenance: {e}")

    try:
        yield
    finally:
        logger.info("Shutting down background tasks...")
        if maintenance_task:
            maintenance_task.cancel()
            try:
                await asyncio.wait_for(maintenance_task, timeout=2.0)
            except asyncio.CancelledError:
                logger.info("Reservation maintenance task cancelled")
            except asyncio.TimeoutError:
                logger.warning("Reservation maintenance task did not cancel within timeout, forcing shutdown")
        logger.info("Rankmatch API Shutting Down... Goodbye!")


app = FastAPI(
    title="Rankmatch API",
    description="Ranked match fee escrow and rating settlement",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with user-friendly messages."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field_path = " -> ".join(str(x) for x in loc[1:]) if len(loc) > 1 else "unknown field"
        errors.append({
            "field": field_path,
            "message": error.get("msg", "Validation error"),
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": errors,
        },
    )


@app.exception_handler(MatchmakingError)
async def matchmaking_exception_handler(request: Request, exc: MatchmakingError):
    """Translate domain errors into their HTTP status with a stable code."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.code, "message": exc.message})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with status code and timing to the API log file."""
    start_time = time.time()

    client_ip = request.client.host if request.client else "unknown"
    method = request.method
    path = request.url.path
    request_id = f"{method}:{path}:{int(start_time * 1000) % 100000}"

    api_logger.info(f">> {request_id} | START | {method} {path} | IP: {client_ip}")
    if request.query_params:
        api_logger.info(f">> {request_id} | QUERY | {request.query_params}")

    try:
        response = await call_next(request)
    except Exception as e:
        api_logger.error(
            f"<< {request_id} | EXCEPTION | {method} {path} | "
            f"Error: {str(e)[:100]} | Time: {time.time() - start_time:.3f}s"
        )
        raise

    api_logger.info(
        f"<< {request_id} | COMPLETE | {method} {path} | "
        f"Status: {response.status_code} | Time: {time.time() - start_time:.3f}s"
    )
    return response


allowed_origins = os.getenv("ALLOWED_ORIGINS", "").split(",")
if not allowed_origins or allowed_origins == [""]:
    allowed_origins = [
        settings.frontend_url,
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(matchmaking.router, prefix="/matchmaking", tags=["matchmaking"])
app.include_router(matches.router, prefix="/matches", tags=["matches"])
app.include_router(player.router, prefix="/player", tags=["player"])
app.include_router(health.router, tags=["health"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Rankmatch API",
        "version": APP_VERSION,
        "environment": settings.environment,
        "docs": "/docs",
    }
