"""
Seller dashboard endpoints (admin dashboards live in routes/admin.py).
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import require_roles
from domain.enums import Role
from domain.responses import success_response
from services import analytics_service

router = APIRouter(prefix="/api/seller/analytics", tags=["analytics"])

require_seller = require_roles(Role.SELLER)


@router.get("")
async def seller_dashboard(
    user: User = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await analytics_service.seller_dashboard(db, user.id))


@router.get("/inventory")
async def seller_inventory(
    user: User = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await analytics_service.seller_inventory(db, user.id))


@router.get("/reviews")
async def seller_reviews(
    days: int = Query(30, ge=1, le=365),
    user: User = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await analytics_service.seller_reviews(db, user.id, days=days))
