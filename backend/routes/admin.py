"""
Admin endpoints — user management, all orders, item removal, dashboards.

Every route here requires the admin role.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_admin
from domain.enums import OrderStatus
from domain.responses import paginated_response, success_response
from models import OrderOut, UserOut
from services import admin_service, analytics_service, book_service, order_service, upload_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users")
async def list_users(
    role: Optional[str] = Query(None, description="user | seller | admin"),
    page: Pagination = Depends(pagination_params),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users, total = await admin_service.list_users(
        db, role=role, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [UserOut.serialize(u) for u in users],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.delete("/users/{user_id}")
async def deactivate_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await admin_service.set_active(db, admin=admin, user_id=user_id, active=False)
    await db.commit()
    return success_response(UserOut.serialize(user))


@router.patch("/users/{user_id}/activate")
async def activate_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await admin_service.set_active(db, admin=admin, user_id=user_id, active=True)
    await db.commit()
    return success_response(UserOut.serialize(user))


@router.get("/orders")
async def list_all_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: Pagination = Depends(pagination_params),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(
        db,
        status=status_filter.value if status_filter else None,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(
        [OrderOut.serialize(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.delete("/orders/{order_id}")
async def delete_order(
    order_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.delete_order(db, order)
    await db.commit()
    return success_response({"message": "Order deleted", "orderId": order_id})


@router.delete("/items/{book_id}")
async def delete_item(
    book_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    book = await book_service.get_book(db, book_id)
    item_image = await book_service.delete_book(db, book)
    await db.commit()
    await upload_service.remove_cover(item_image)
    return success_response({"message": "Book deleted", "bookId": book_id})


@router.get("/analytics")
async def admin_dashboard(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await analytics_service.admin_dashboard(db))


@router.get("/analytics/users")
async def user_analytics(
    days: int = Query(30, ge=1, le=365),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await analytics_service.admin_user_analytics(db, days=days))
