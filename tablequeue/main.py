"""FastAPI application entry point."""

import asyncio
import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from tablequeue.api.routes import api_router
from tablequeue.core.config import settings
from tablequeue.core.errors import ConflictError, DomainError, TransactionFailure
from tablequeue.core.rate_limit import limiter
from tablequeue.core.rbac import token_data_from_payload
from tablequeue.core.security import ACCESS_TOKEN_COOKIE, decode_access_token
from tablequeue.db.base import Base
from tablequeue.db.session import SessionLocal, engine
from tablequeue.services.notification_bus import NotificationBus, WebSocketSubscription

VERSION = "1.0.0"

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            })

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        csp_origins = " ".join(settings.cors_origins_list)
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: blob:; "
            f"connect-src 'self' ws: wss: {csp_origins}; "
            "font-src 'self' data:;"
        )
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        # Skip logging for health checks
        if request.url.path in ["/health", "/health/ready", "/"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            raise

        process_time = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"Response: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {process_time:.3f}s - Client: {client_ip}"
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting TableQueue")

    # Create tables if they don't exist (for SQLite dev)
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    yield

    logger.info(
        f"Shutting down TableQueue ({app.state.bus.stats['published']} events published)"
    )


app = FastAPI(
    title="TableQueue",
    description="Multi-tenant restaurant ordering and queue management API",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# One bus per process; routes reach it through app.state
app.state.bus = NotificationBus()

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def _error_response(error: DomainError) -> JSONResponse:
    headers = {"Retry-After": "1"} if error.retryable else None
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.message, "code": error.code, "retryable": error.retryable},
        headers=headers,
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error_response(exc)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Unhandled integrity error on {request.method} {request.url.path}: {exc.orig}")
    return _error_response(ConflictError("The change conflicts with existing data, please refresh"))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _error_response(TransactionFailure("Temporary database problem, please retry"))


# Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - MUST be added last so it runs first (Starlette LIFO order).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    max_age=600,  # Cache preflight for 10 minutes
)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic liveness check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.get("/health/ready")
def readiness_check(request: Request):
    """Readiness probe with database and notification bus check."""
    checks = {"database": "unknown", "notification_bus": "unknown"}

    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"
    finally:
        if db:
            db.close()

    bus = request.app.state.bus
    checks["notification_bus"] = f"healthy ({bus.listener_count} listeners)"

    all_healthy = all(c.startswith("healthy") for c in checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "TableQueue API",
        "docs": "/docs",
        "health": "/health",
    }


# ===== WebSocket =====

async def _authenticate_websocket(websocket: WebSocket, token: Optional[str]):
    """Resolve the socket's subscriber identity.

    Returns ``(True, None)`` for an anonymous customer, ``(True, user)`` for
    staff and ``(False, None)`` after closing the socket on a bad token.
    """
    raw = token or websocket.cookies.get(ACCESS_TOKEN_COOKIE)
    if not raw:
        return True, None

    user = token_data_from_payload(decode_access_token(raw))
    if user is None:
        logger.warning("WebSocket rejected: invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return False, None
    return True, user


async def _pump(websocket: WebSocket, subscription: WebSocketSubscription):
    """Forward bus events from the subscription queue to the socket."""
    while True:
        message = await subscription.queue.get()
        await websocket.send_json(message)


@app.websocket("/ws")
async def websocket_events(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Live event stream.

    Staff tokens receive every event of their organization (super admins: all
    organizations); anonymous customers receive public event types only.
    """
    accepted, user = await _authenticate_websocket(websocket, token)
    if not accepted:
        return

    bus: NotificationBus = websocket.app.state.bus
    if bus.listener_count >= settings.ws_max_connections:
        logger.warning("WebSocket connection rejected: bus at capacity")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    subscription = WebSocketSubscription(
        asyncio.get_running_loop(),
        organization_id=user.organization_id if user else None,
        see_all=bool(user and user.is_super_admin),
        anonymous=user is None,
    )
    handle = bus.subscribe(subscription)
    sender = asyncio.create_task(_pump(websocket, subscription))
    logger.debug(f"WebSocket connected, user_id={user.user_id if user else None}")

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.debug("WebSocket disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        bus.unsubscribe(handle)
        sender.cancel()
