"""
Order service — placing orders, status lifecycle, and stock bookkeeping.

Status graph:
    pending -> confirmed -> processing -> shipped -> delivered
    pending | confirmed | processing -> cancelled

A checkout is split into one order per seller. Stock is decremented when an
order is placed and restored when it is cancelled. Every status change is
appended to order_status_history.
"""
import logging
from collections import OrderedDict

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Book, Order, OrderItem, OrderStatusHistory, User, utcnow
from domain.enums import OPEN_ORDER_STATUSES, OrderStatus, PaymentStatus, Role, can_transition
from domain.errors import NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)


async def _lock_books(db: AsyncSession, book_ids) -> dict[int, Book]:
    ids = [i for i in book_ids if i is not None]
    if not ids:
        return {}
    res = await db.execute(
        select(Book)
        .where(Book.id.in_(ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {b.id: b for b in res.scalars().all()}


async def _adjust_stock(db: AsyncSession, book: Book, delta: int, now) -> bool:
    """
    Add `delta` to a book's stock with a single UPDATE. A decrement only
    applies while enough stock is left.

    Returns:
        False when the guarded decrement matched no row
    """
    stmt = (
        update(Book)
        .where(Book.id == book.id)
        .values(stock=Book.stock + delta, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(Book.stock >= -delta)
    res = await db.execute(stmt)
    await db.refresh(book, attribute_names=["stock", "updated_at"])
    return res.rowcount == 1


def _short_stock(book: Book, quantity: int) -> ValidationError:
    return ValidationError(
        f"Not enough stock for book: {book.title}",
        details={"bookId": book.id, "available": book.stock, "requested": quantity},
    )


async def place_orders(
    db: AsyncSession,
    *,
    buyer: User,
    lines: list[tuple[int, int]],
    shipping_address: dict,
    payment_method: str,
) -> tuple[list[Order], list[Book]]:
    """
    Create one pending order per seller for `lines` of (book_id, quantity).

    Every book is checked before anything is written, so a missing book or a
    short stock fails the whole request. Stock is taken with guarded UPDATEs;
    if another checkout drains a book first, the request fails and the
    caller's rollback discards any decrements already issued.

    Returns:
        (orders, books whose stock dropped below the low-stock threshold)
    """
    if not lines:
        raise ValidationError("Order must contain at least one item")

    wanted: "OrderedDict[int, int]" = OrderedDict()
    for book_id, quantity in lines:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")
        wanted[book_id] = wanted.get(book_id, 0) + quantity

    books = await _lock_books(db, wanted.keys())
    for book_id, quantity in wanted.items():
        book = books.get(book_id)
        if book is None:
            raise NotFoundError("Book", book_id)
        if book.stock < quantity:
            raise _short_stock(book, quantity)

    now = utcnow()
    for book_id, quantity in wanted.items():
        book = books[book_id]
        if not await _adjust_stock(db, book, -quantity, now):
            raise _short_stock(book, quantity)

    by_seller: "OrderedDict[int, list[tuple[Book, int]]]" = OrderedDict()
    for book_id, quantity in wanted.items():
        book = books[book_id]
        by_seller.setdefault(book.seller_id, []).append((book, quantity))

    orders: list[Order] = []
    low_stock: list[Book] = []
    for seller_id, entries in by_seller.items():
        order = Order(
            user_id=buyer.id,
            user_name=buyer.name,
            seller_id=seller_id,
            status=OrderStatus.PENDING.value,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            ship_street=shipping_address["street"],
            ship_city=shipping_address["city"],
            ship_state=shipping_address["state"],
            ship_pincode=shipping_address["pincode"],
            ship_country=shipping_address.get("country"),
            created_at=now,
            updated_at=now,
        )
        total = 0.0
        for book, quantity in entries:
            order.items.append(OrderItem(
                book_id=book.id,
                title=book.title,
                quantity=quantity,
                unit_price=book.price,
            ))
            total += book.price * quantity
            if book.stock < settings.low_stock_threshold:
                low_stock.append(book)
        order.total_amount = round(total, 2)
        order.status_history.append(
            OrderStatusHistory(status=OrderStatus.PENDING.value, note="Order placed", created_at=now)
        )
        db.add(order)
        orders.append(order)

    await db.flush()
    for order in orders:
        logger.info(
            f"Order created: id={order.id} buyer={buyer.id} seller={order.seller_id} "
            f"total={order.total_amount}"
        )
    return orders, low_stock


async def get_order(db: AsyncSession, order_id: int) -> Order:
    order = await db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def ensure_can_view(user: User, order: Order) -> None:
    if user.role == Role.ADMIN.value or user.id in (order.user_id, order.seller_id):
        return
    raise PermissionDeniedError("You do not have access to this order")


def ensure_can_manage(user: User, order: Order) -> None:
    """Status and tracking changes: the order's seller or an admin."""
    if user.role == Role.ADMIN.value:
        return
    if user.role == Role.SELLER.value and order.seller_id == user.id:
        return
    raise PermissionDeniedError("Only the seller of this order can update it")


async def _restore_stock(db: AsyncSession, order: Order) -> None:
    books = await _lock_books(db, (item.book_id for item in order.items))
    now = utcnow()
    for item in order.items:
        book = books.get(item.book_id)
        if book is not None:
            await _adjust_stock(db, book, item.quantity, now)


async def apply_status(db: AsyncSession, order: Order, new_status: str, *, note: str | None = None) -> Order:
    """Move an order along the status graph; side effects follow the target state."""
    if not can_transition(order.status, new_status):
        raise ValidationError(
            f"Cannot change order status from {order.status} to {new_status}",
            details={"from": order.status, "to": new_status},
        )

    now = utcnow()
    if new_status == OrderStatus.CANCELLED.value:
        await _restore_stock(db, order)
        if order.payment_status == PaymentStatus.COMPLETED.value:
            order.payment_status = PaymentStatus.REFUNDED.value
    elif new_status == OrderStatus.DELIVERED.value:
        order.delivered_at = now
        order.payment_status = PaymentStatus.COMPLETED.value

    order.status = new_status
    order.updated_at = now
    order.status_history.append(OrderStatusHistory(status=new_status, note=note, created_at=now))
    await db.flush()
    logger.info(f"Order {order.id} -> {new_status}")
    return order


async def cancel_order(db: AsyncSession, order: Order, *, user: User) -> Order:
    if order.user_id != user.id:
        raise PermissionDeniedError("You can only cancel your own orders")
    if order.status not in OPEN_ORDER_STATUSES:
        raise ValidationError(f"Order cannot be cancelled once it is {order.status}")
    return await apply_status(db, order, OrderStatus.CANCELLED.value, note="Cancelled by customer")


async def set_tracking(db: AsyncSession, order: Order, *, tracking_number: str, courier: str | None) -> Order:
    if order.status == OrderStatus.CANCELLED.value:
        raise ValidationError("Cannot add tracking to a cancelled order")
    order.tracking_number = tracking_number.strip()
    if courier is not None:
        order.courier = courier.strip()
    order.updated_at = utcnow()
    await db.flush()
    return order


async def delete_order(db: AsyncSession, order: Order) -> None:
    """Admin removal. Open orders give their stock back first."""
    if order.status in OPEN_ORDER_STATUSES:
        await _restore_stock(db, order)
    await db.delete(order)
    await db.flush()
    logger.info(f"Order deleted: id={order.id}")


async def list_orders(
    db: AsyncSession,
    *,
    user_id: int | None = None,
    seller_id: int | None = None,
    status: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Order], int]:
    conditions = []
    if user_id is not None:
        conditions.append(Order.user_id == user_id)
    if seller_id is not None:
        conditions.append(Order.seller_id == seller_id)
    if status is not None:
        conditions.append(Order.status == status)

    total = (await db.execute(select(func.count(Order.id)).where(*conditions))).scalar_one()
    res = await db.execute(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def order_stats(db: AsyncSession, *, seller_id: int | None = None) -> dict:
    conditions = [Order.seller_id == seller_id] if seller_id is not None else []
    res = await db.execute(
        select(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0.0))
        .where(*conditions)
        .group_by(Order.status)
    )
    by_status = {s.value: {"count": 0, "amount": 0.0} for s in OrderStatus}
    total_orders = 0
    revenue = 0.0
    for status, count, amount in res.all():
        by_status[status] = {"count": count, "amount": round(amount, 2)}
        total_orders += count
        if status != OrderStatus.CANCELLED.value:
            revenue += amount
    return {
        "totalOrders": total_orders,
        "totalRevenue": round(revenue, 2),
        "byStatus": by_status,
    }
