"""
Review service — one review per user per book, with cached book ratings.

Every write recomputes the book's average_rating (one decimal) and
review_count from the reviews table.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Book, Order, OrderItem, Review, User, utcnow
from domain.enums import OrderStatus, Role
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

REVIEW_SORTS = {
    "newest": (Review.created_at.desc(), Review.id.desc()),
    "highest": (Review.rating.desc(), Review.created_at.desc()),
    "lowest": (Review.rating.asc(), Review.created_at.desc()),
}


async def recompute_book_rating(db: AsyncSession, book_id: int) -> Book | None:
    await db.flush()
    avg, count = (await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.book_id == book_id)
    )).one()
    book = await db.get(Book, book_id)
    if book is None:
        return None
    book.review_count = count or 0
    book.average_rating = round(float(avg), 1) if count else 0.0
    await db.flush()
    return book


async def has_received_book(db: AsyncSession, *, user_id: int, book_id: int) -> bool:
    """True when the user has a delivered order containing the book."""
    res = await db.execute(
        select(func.count(Order.id))
        .select_from(Order)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .where(
            Order.user_id == user_id,
            Order.status == OrderStatus.DELIVERED.value,
            OrderItem.book_id == book_id,
        )
    )
    return res.scalar_one() > 0


async def add_review(db: AsyncSession, *, book: Book, user: User, rating: int, comment: str) -> Review:
    existing = await db.execute(
        select(Review.id).where(Review.book_id == book.id, Review.user_id == user.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("You have already reviewed this book")

    review = Review(
        book_id=book.id,
        user_id=user.id,
        user_name=user.name,
        rating=rating,
        comment=comment,
        verified=await has_received_book(db, user_id=user.id, book_id=book.id),
    )
    db.add(review)
    await recompute_book_rating(db, book.id)
    logger.info(f"Review added: book={book.id} user={user.id} rating={rating}")
    return review


async def list_reviews(
    db: AsyncSession,
    book_id: int,
    *,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Review], int]:
    if sort not in REVIEW_SORTS:
        raise ValidationError(f"Unknown sort '{sort}'. Use one of: {', '.join(REVIEW_SORTS)}", field="sort")
    total = (await db.execute(
        select(func.count(Review.id)).where(Review.book_id == book_id)
    )).scalar_one()
    res = await db.execute(
        select(Review)
        .where(Review.book_id == book_id)
        .order_by(*REVIEW_SORTS[sort])
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def get_review(db: AsyncSession, review_id: int) -> Review:
    review = await db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review", review_id)
    return review


async def update_review(
    db: AsyncSession,
    review: Review,
    *,
    user: User,
    rating: int | None = None,
    comment: str | None = None,
) -> Review:
    if review.user_id != user.id:
        raise PermissionDeniedError("You can only edit your own reviews")
    if rating is not None:
        review.rating = rating
    if comment is not None:
        comment = comment.strip()
        if not comment:
            raise ValidationError("Review can not be empty!", field="comment")
        review.comment = comment
    review.updated_at = utcnow()
    await recompute_book_rating(db, review.book_id)
    return review


async def delete_review(db: AsyncSession, review: Review, *, user: User) -> None:
    if review.user_id != user.id and user.role != Role.ADMIN.value:
        raise PermissionDeniedError("You can only delete your own reviews")
    book_id = review.book_id
    await db.delete(review)
    await recompute_book_rating(db, book_id)
    logger.info(f"Review deleted: id={review.id} book={book_id}")
