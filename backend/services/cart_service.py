"""
Cart service — server-side shopping cart per user.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Book, CartItem, utcnow
from domain.errors import NotFoundError, ValidationError
from models import CartOut


async def cart_lines(db: AsyncSession, user_id: int) -> list[tuple[CartItem, Book]]:
    res = await db.execute(
        select(CartItem, Book)
        .join(Book, CartItem.book_id == Book.id)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.created_at, CartItem.id)
    )
    return [(item, book) for item, book in res.all()]


async def get_cart(db: AsyncSession, user_id: int) -> dict:
    lines = []
    total = 0.0
    count = 0
    for item, book in await cart_lines(db, user_id):
        line_total = round(book.price * item.quantity, 2)
        total += line_total
        count += item.quantity
        lines.append({
            "book_id": book.id,
            "quantity": item.quantity,
            "unit_price": book.price,
            "line_total": line_total,
            "book": book,
        })
    return CartOut.serialize({"items": lines, "item_count": count, "total": round(total, 2)})


async def _get_line(db: AsyncSession, user_id: int, book_id: int) -> CartItem | None:
    res = await db.execute(
        select(CartItem).where(CartItem.user_id == user_id, CartItem.book_id == book_id)
    )
    return res.scalar_one_or_none()


def _check_stock(book: Book, quantity: int) -> None:
    if quantity > book.stock:
        raise ValidationError(
            f"Only {book.stock} left in stock for book: {book.title}",
            details={"bookId": book.id, "available": book.stock, "requested": quantity},
        )


async def add_item(db: AsyncSession, *, user_id: int, book_id: int, quantity: int) -> CartItem:
    """Add a book; an existing line grows by `quantity`."""
    book = await db.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book", book_id)

    line = await _get_line(db, user_id, book_id)
    new_quantity = quantity + (line.quantity if line else 0)
    _check_stock(book, new_quantity)

    if line is None:
        line = CartItem(user_id=user_id, book_id=book_id, quantity=new_quantity)
        db.add(line)
    else:
        line.quantity = new_quantity
        line.updated_at = utcnow()
    await db.flush()
    return line


async def set_quantity(db: AsyncSession, *, user_id: int, book_id: int, quantity: int) -> CartItem | None:
    """Set a line's quantity; 0 removes the line and returns None."""
    line = await _get_line(db, user_id, book_id)
    if line is None:
        raise NotFoundError("Cart item", book_id)

    if quantity == 0:
        await db.delete(line)
        await db.flush()
        return None

    book = await db.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book", book_id)
    _check_stock(book, quantity)
    line.quantity = quantity
    line.updated_at = utcnow()
    await db.flush()
    return line


async def remove_item(db: AsyncSession, *, user_id: int, book_id: int) -> None:
    line = await _get_line(db, user_id, book_id)
    if line is None:
        raise NotFoundError("Cart item", book_id)
    await db.delete(line)
    await db.flush()


async def clear_cart(db: AsyncSession, user_id: int) -> int:
    res = await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    await db.flush()
    return res.rowcount or 0
