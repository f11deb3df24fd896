"""
Health check and service banner endpoints.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from config import settings
from database import ping_db
from services.notification_service import hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Health check — verifies database connectivity."""
    try:
        await ping_db()
        return {
            "status": "healthy",
            "database_connected": True,
            "environment": settings.environment,
            "version": settings.app_version,
            "websocket_clients": hub.connection_count,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "database_connected": False,
                "error": "Database unreachable",
            },
        )


@router.get("/api")
async def api_root():
    return {
        "status": "success",
        "message": "Welcome to BookNest API",
        "version": settings.app_version,
    }


@router.get("/")
async def banner():
    return {
        "name": "BookNest API",
        "environment": settings.environment,
        "version": settings.app_version,
        "endpoints": {
            "auth": "/api/auth",
            "seller": "/api/seller",
            "admin": "/api/admin",
            "books": "/api/books",
            "cart": "/api/cart",
            "orders": "/api/orders",
            "wishlist": "/api/wishlist",
            "recommendations": "/api/recommendations",
            "websocket": "/api/ws",
            "health": "/health",
            "uploads": "/uploads",
        },
    }
