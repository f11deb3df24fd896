"""
Order endpoints — placing orders, buyer history, seller/admin fulfilment.

Notifications are sent after the transaction commits:
  new_order    -> each seller that received an order
  low_stock    -> seller of a book that dropped below the threshold
  order_status -> buyer, on every seller/admin status change
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import Book, Order, User
from deps import Pagination, get_current_user, pagination_params, require_admin, require_seller_or_admin
from domain.enums import OrderStatus, Role
from domain.errors import PermissionDeniedError, ValidationError
from domain.responses import paginated_response, success_response
from models import CheckoutRequest, OrderCreate, OrderOut, OrderStatusUpdate, TrackingUpdate
from services import cart_service, notification_service, order_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


def _orders(items) -> list[dict]:
    return [OrderOut.serialize(o) for o in items]


async def _announce_new_orders(orders: list[Order], low_stock: list[Book]) -> None:
    for order in orders:
        await notification_service.notify_new_order(order)
    seen = set()
    for book in low_stock:
        if book.id not in seen:
            seen.add(book.id)
            await notification_service.notify_low_stock(book)


# ── Buyer ───────────────────────────────────────────────────────────

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    request: OrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, low_stock = await order_service.place_orders(
        db,
        buyer=user,
        lines=[(item.book_id, item.quantity) for item in request.items],
        shipping_address=request.shipping_address.model_dump(),
        payment_method=request.payment_method.value,
    )
    await db.commit()
    await _announce_new_orders(orders, low_stock)
    return success_response(_orders(orders), meta={"count": len(orders)})


@router.post("/checkout", status_code=status.HTTP_201_CREATED)
async def checkout(
    request: CheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    lines = await cart_service.cart_lines(db, user.id)
    if not lines:
        raise ValidationError("Your cart is empty")

    orders, low_stock = await order_service.place_orders(
        db,
        buyer=user,
        lines=[(item.book_id, item.quantity) for item, _book in lines],
        shipping_address=request.shipping_address.model_dump(),
        payment_method=request.payment_method.value,
    )
    await cart_service.clear_cart(db, user.id)
    await db.commit()
    await _announce_new_orders(orders, low_stock)
    return success_response(_orders(orders), meta={"count": len(orders)})


@router.get("/my-orders")
async def my_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: Pagination = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(
        db,
        user_id=user.id,
        status=status_filter.value if status_filter else None,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(_orders(orders), limit=page["limit"], offset=page["offset"], total=total)


@router.patch("/cancel/{order_id}")
async def cancel_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    order = await order_service.cancel_order(db, order, user=user)
    await db.commit()
    logger.info(f"Order {order.id} cancelled by buyer {user.id}")
    return success_response(OrderOut.serialize(order))


# ── Seller / admin ──────────────────────────────────────────────────

@router.get("")
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: Pagination = Depends(pagination_params),
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(
        db,
        seller_id=None if user.role == Role.ADMIN.value else user.id,
        status=status_filter.value if status_filter else None,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(_orders(orders), limit=page["limit"], offset=page["offset"], total=total)


@router.get("/stats")
async def order_stats(
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    seller_id = None if user.role == Role.ADMIN.value else user.id
    return success_response(await order_service.order_stats(db, seller_id=seller_id))


@router.get("/seller/{seller_id}")
async def seller_orders(
    seller_id: int,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    page: Pagination = Depends(pagination_params),
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    if user.role != Role.ADMIN.value and user.id != seller_id:
        raise PermissionDeniedError("You can only view your own orders")
    orders, total = await order_service.list_orders(
        db,
        seller_id=seller_id,
        status=status_filter.value if status_filter else None,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(_orders(orders), limit=page["limit"], offset=page["offset"], total=total)


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    order_service.ensure_can_view(user, order)
    return success_response(OrderOut.serialize(order))


@router.patch("/{order_id}/status")
async def update_status(
    order_id: int,
    request: OrderStatusUpdate,
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    order_service.ensure_can_manage(user, order)
    order = await order_service.apply_status(db, order, request.status.value, note=request.note)
    await db.commit()
    await notification_service.notify_order_status(order)
    return success_response(OrderOut.serialize(order))


@router.patch("/{order_id}/tracking")
async def update_tracking(
    order_id: int,
    request: TrackingUpdate,
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    order_service.ensure_can_manage(user, order)
    order = await order_service.set_tracking(
        db, order, tracking_number=request.tracking_number, courier=request.courier
    )
    await db.commit()
    return success_response(OrderOut.serialize(order))


@router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.delete_order(db, order)
    await db.commit()
    return success_response({"message": "Order deleted", "orderId": order_id})
