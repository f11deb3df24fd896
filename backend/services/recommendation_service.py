"""
Recommendation service — similar, personal, trending and popular books.

Everything here is plain SQL over orders and reviews; no model training.
"""
from datetime import timedelta

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Book, Order, OrderItem, Review, utcnow
from domain.enums import OrderStatus
from services.book_service import get_book

GOOD_RATING = 4


async def similar_books(db: AsyncSession, book_id: int, *, limit: int = 5) -> list[Book]:
    book = await get_book(db, book_id)
    res = await db.execute(
        select(Book)
        .where(
            Book.id != book.id,
            or_(Book.genre == book.genre, Book.author == book.author),
        )
        .order_by(Book.average_rating.desc(), Book.review_count.desc(), Book.id)
        .limit(limit)
    )
    return list(res.scalars().all())


async def popular_books(db: AsyncSession, *, limit: int = 10) -> list[Book]:
    res = await db.execute(
        select(Book)
        .where(Book.average_rating >= GOOD_RATING)
        .order_by(Book.average_rating.desc(), Book.review_count.desc(), Book.id)
        .limit(limit)
    )
    return list(res.scalars().all())


async def personal_recommendations(db: AsyncSession, user_id: int, *, limit: int = 10) -> list[Book]:
    """
    Well-rated books sharing a genre or author with the user's past orders.

    Books the user already ordered are skipped. Without order history the
    popular list is returned instead.
    """
    res = await db.execute(
        select(Book.id, Book.genre, Book.author)
        .join(OrderItem, OrderItem.book_id == Book.id)
        .join(Order, OrderItem.order_id == Order.id)
        .where(Order.user_id == user_id, Order.status != OrderStatus.CANCELLED.value)
        .distinct()
    )
    history = res.all()
    if not history:
        return await popular_books(db, limit=limit)

    ordered_ids = {book_id for book_id, _, _ in history}
    genres = {genre for _, genre, _ in history}
    authors = {author for _, _, author in history}

    res = await db.execute(
        select(Book)
        .where(
            Book.id.not_in(ordered_ids),
            Book.average_rating >= GOOD_RATING,
            or_(Book.genre.in_(genres), Book.author.in_(authors)),
        )
        .order_by(Book.average_rating.desc(), Book.review_count.desc(), Book.id)
        .limit(limit)
    )
    return list(res.scalars().all())


async def trending_books(db: AsyncSession, *, days: int = 30, limit: int = 10) -> list[Book]:
    """Books ordered, or reviewed with a good rating, inside the window."""
    since = utcnow() - timedelta(days=days)
    ordered = (
        select(OrderItem.book_id)
        .join(Order, OrderItem.order_id == Order.id)
        .where(Order.created_at >= since, OrderItem.book_id.is_not(None))
    )
    reviewed = select(Review.book_id).where(Review.created_at >= since, Review.rating >= GOOD_RATING)

    res = await db.execute(
        select(Book)
        .where(or_(Book.id.in_(ordered), Book.id.in_(reviewed)))
        .order_by(Book.average_rating.desc(), Book.review_count.desc(), Book.id)
        .limit(limit)
    )
    return list(res.scalars().all())
