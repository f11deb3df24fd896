"""
BookNest — FastAPI Application

Multi-role online bookstore: accounts, catalogue, cart and checkout, order
lifecycle, reviews, wishlists, dashboards and live notifications.
"""
import logging
import os
import re
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from middleware.rate_limit import general_rate_limit
from routes import admin, analytics, auth, books, cart, health, notifications, orders, recommendations, wishlist

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings, create tables, start heartbeat. Shutdown: stop them."""
    settings.validate_production_settings()

    os.makedirs(settings.upload_dir, exist_ok=True)

    from database import init_db
    await init_db()
    logger.info("Database initialized")

    from services.notification_service import hub
    hub.start(settings.ws_heartbeat_seconds)

    yield  # app runs here

    await hub.stop()

    from services.async_executor import shutdown_executor
    shutdown_executor()

    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="BookNest API",
    description="Online bookstore backend for buyers, sellers and admins",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)

# Auth endpoints use their own, stricter limiter
app.include_router(auth.router)
app.include_router(auth.seller_auth_router)
app.include_router(auth.admin_auth_router)

_general = [Depends(general_rate_limit())]
for _router in (
    books.router,
    cart.router,
    orders.router,
    wishlist.router,
    analytics.router,
    admin.router,
    recommendations.router,
):
    app.include_router(_router, dependencies=_general)

app.include_router(notifications.router)

# ── Static Files (cover images) ─────────────────────────────────────

app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


# ── Exception Handlers ──────────────────────────────────────────────

def _error_body(code: str, message: str, details=None) -> dict:
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
    }


def _error_code(exc: Exception) -> str:
    """NotFoundError -> not_found, PermissionDeniedError -> permission_denied."""
    if getattr(exc, "code", None):
        return exc.code
    name = exc.__class__.__name__
    if name.endswith("Error"):
        name = name[: -len("Error")]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients.
    The full traceback is logged server-side for debugging.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_body("internal_server_error", "Internal server error"),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code and headers, but wraps the payload.
    """
    headers = getattr(exc, "headers", None)

    # DomainError carries structured error info
    if hasattr(exc, "message") and hasattr(exc, "details"):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(_error_code(exc), exc.message, exc.details),
            headers=headers,
        )

    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = f"Can't find {request.url.path} on this server!"
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            "not_found" if exc.status_code == 404 else "http_error",
            message,
            detail if not isinstance(detail, str) else None,
        ),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Pydantic/FastAPI input errors -> 400 with one entry per field."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        msg = str(err.get("msg", "Invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        errors.append({"field": ".".join(loc) or None, "message": msg, "type": err.get("type")})

    message = "Invalid input data"
    if errors:
        first = errors[0]
        message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return JSONResponse(
        status_code=400,
        content=_error_body("validation_error", message, {"errors": errors}),
    )


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request, exc: IntegrityError):
    """Unique/foreign-key violations that slipped past service checks."""
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=409,
        content=_error_body("conflict", "Duplicate field value or conflicting data. Please use another value!"),
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
