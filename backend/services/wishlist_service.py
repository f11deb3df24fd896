"""
Wishlist service — denormalised favourites so the list renders without joins.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Book, User, WishlistItem
from domain.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


async def list_items(db: AsyncSession, user_id: int) -> list[WishlistItem]:
    res = await db.execute(
        select(WishlistItem)
        .where(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
    )
    return list(res.scalars().all())


async def add_item(db: AsyncSession, *, user: User, book_id: int) -> WishlistItem:
    book = await db.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book", book_id)

    existing = await db.execute(
        select(WishlistItem.id).where(WishlistItem.user_id == user.id, WishlistItem.book_id == book_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Book is already in your wishlist")

    item = WishlistItem(
        user_id=user.id,
        book_id=book.id,
        user_name=user.name,
        title=book.title,
        author=book.author,
        genre=book.genre,
        price=book.price,
        item_image=book.item_image,
    )
    db.add(item)
    await db.flush()
    return item


async def remove_item(db: AsyncSession, *, user_id: int, book_id: int) -> None:
    """Remove only the caller's entry for the book."""
    res = await db.execute(
        select(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.book_id == book_id)
    )
    item = res.scalar_one_or_none()
    if item is None:
        raise NotFoundError("Wishlist item", book_id)
    await db.delete(item)
    await db.flush()
