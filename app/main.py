# Application entrypoint: configures logging, middleware, error rendering, and API routers.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
import logging
import os

from .db import Base, engine, is_lock_timeout
from .errors import DatastoreTimeoutError, DomainError
from .redis_client import redis_state
from .settings import get_settings
from .routes.auth import router as auth_router
from .routes.bookings import router as bookings_router
from .routes.commissions import router as commissions_router
from .routes.listings import router as listings_router

# Attributes every LogRecord carries; anything else arrived through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class EventFormatter(logging.Formatter):
    """Appends `extra=` fields as sorted key=value pairs after the event name."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_")}
        if not fields:
            return line
        return line + " " + " ".join(f"{k}={fields[k]}" for k in sorted(fields))


_handler = logging.StreamHandler()
_handler.setFormatter(EventFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), handlers=[_handler])
logger = logging.getLogger("nestly.api")


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: str | None) -> list[str]:
    default_dev_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    # Map '*' to explicit localhost origins so credentialed requests remain allowed
    if "*" in origins:
        return default_dev_origins

    return origins


app = FastAPI(title="Nestly API", version="0.1.0")
allow_list = _parse_cors_origins(os.getenv("CORS_ORIGINS"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(exc: DomainError) -> JSONResponse:
    headers = {"Retry-After": str(exc.retry_after)} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_payload()}, headers=headers)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500 or exc.retryable:
        logger.warning("request.retryable_error", extra={"path": request.url.path, "error": exc.code})
    return _error_response(exc)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    # Busy/lock waits outside a service call (e.g., the auth lookup) still map to a retryable 503
    if is_lock_timeout(exc):
        logger.warning("request.datastore_timeout", extra={"path": request.url.path})
        return _error_response(DatastoreTimeoutError("datastore lock wait timed out; retry the request"))
    raise exc


@app.on_event("startup")
def on_startup() -> None:
    # For local SQLite, auto-create tables; production DBs rely on Alembic migrations.
    if get_settings().database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    # Redis is optional; its state is reported but never fails the check
    return {"status": "ok", "redis": redis_state()}


# Mount application routers (authentication and domain APIs)
app.include_router(auth_router, prefix="", tags=["auth"])
app.include_router(listings_router, prefix="/api/v1", tags=["listings"])
app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])
app.include_router(commissions_router, prefix="/api/v1", tags=["commissions"])
