"""
Book catalogue service — listing queries, CRUD, and aggregate views.
"""
import logging

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Book, CartItem, Order, OrderItem, Review, User, WishlistItem, utcnow
from domain.constants import SHORTLIST_SIZE
from domain.enums import OPEN_ORDER_STATUSES, OrderStatus, Role
from domain.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("relevance", "newest", "price_asc", "price_desc", "rating", "best_selling")
AVAILABILITY_OPTIONS = ("all", "in_stock", "out_of_stock")


def _units_sold_subquery():
    """Units sold per book across orders that were not cancelled."""
    return (
        select(
            OrderItem.book_id.label("book_id"),
            func.sum(OrderItem.quantity).label("sold"),
        )
        .join(Order, OrderItem.order_id == Order.id)
        .where(Order.status != OrderStatus.CANCELLED.value, OrderItem.book_id.is_not(None))
        .group_by(OrderItem.book_id)
        .subquery()
    )


async def list_books(
    db: AsyncSession,
    *,
    q: str | None = None,
    genre: str | None = None,
    author: str | None = None,
    seller_id: int | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    min_rating: float | None = None,
    availability: str = "all",
    sort: str = "relevance",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Book], int]:
    if sort not in SORT_OPTIONS:
        raise ValidationError(f"Unknown sort '{sort}'. Use one of: {', '.join(SORT_OPTIONS)}", field="sort")
    if availability not in AVAILABILITY_OPTIONS:
        raise ValidationError(
            f"Unknown availability '{availability}'. Use one of: {', '.join(AVAILABILITY_OPTIONS)}",
            field="availability",
        )
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError("minPrice cannot be greater than maxPrice")

    conditions = []
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        conditions.append(or_(
            Book.title.ilike(pattern),
            Book.author.ilike(pattern),
            Book.genre.ilike(pattern),
        ))
    if genre:
        conditions.append(func.lower(Book.genre) == genre.strip().lower())
    if author:
        conditions.append(Book.author.ilike(f"%{author.strip()}%"))
    if seller_id is not None:
        conditions.append(Book.seller_id == seller_id)
    if min_price is not None:
        conditions.append(Book.price >= min_price)
    if max_price is not None:
        conditions.append(Book.price <= max_price)
    if min_rating is not None:
        conditions.append(Book.average_rating >= min_rating)
    if availability == "in_stock":
        conditions.append(Book.stock > 0)
    elif availability == "out_of_stock":
        conditions.append(Book.stock == 0)

    total = (await db.execute(select(func.count(Book.id)).where(*conditions))).scalar_one()

    stmt = select(Book).where(*conditions)
    if sort == "price_asc":
        stmt = stmt.order_by(Book.price.asc(), Book.id.asc())
    elif sort == "price_desc":
        stmt = stmt.order_by(Book.price.desc(), Book.id.desc())
    elif sort == "rating":
        stmt = stmt.order_by(Book.average_rating.desc(), Book.review_count.desc(), Book.id.desc())
    elif sort == "best_selling":
        sold = _units_sold_subquery()
        stmt = (
            stmt.outerjoin(sold, sold.c.book_id == Book.id)
            .order_by(func.coalesce(sold.c.sold, 0).desc(), Book.id.desc())
        )
    else:
        stmt = stmt.order_by(Book.created_at.desc(), Book.id.desc())

    res = await db.execute(stmt.limit(limit).offset(offset))
    return list(res.scalars().all()), total


async def get_book(db: AsyncSession, book_id: int) -> Book:
    book = await db.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book", book_id)
    return book


def ensure_can_modify(user: User, book: Book) -> None:
    """Only the owning seller or an admin may change a listing."""
    if user.role == Role.ADMIN.value:
        return
    if user.role == Role.SELLER.value and book.seller_id == user.id:
        return
    raise PermissionDeniedError("You can only modify your own books")


async def create_book(
    db: AsyncSession,
    *,
    seller: User,
    title: str,
    author: str,
    genre: str,
    description: str,
    price: float,
    stock: int,
    item_image: str,
) -> Book:
    book = Book(
        title=title.strip(),
        author=author.strip(),
        genre=genre.strip(),
        description=description.strip(),
        price=round(price, 2),
        stock=stock,
        item_image=item_image,
        seller_id=seller.id,
        seller_name=seller.name,
    )
    db.add(book)
    await db.flush()
    logger.info(f"Book created: id={book.id} seller={seller.id}")
    return book


async def update_book(db: AsyncSession, book: Book, *, changes: dict) -> float | None:
    """
    Apply non-None `changes` to a book.

    Returns the previous price when the price changed, else None.
    """
    old_price = None
    for field in ("title", "author", "genre", "description"):
        value = changes.get(field)
        if value is not None:
            setattr(book, field, value.strip())
    if changes.get("stock") is not None:
        book.stock = changes["stock"]
    if changes.get("item_image") is not None:
        book.item_image = changes["item_image"]
    if changes.get("price") is not None:
        new_price = round(changes["price"], 2)
        if new_price != book.price:
            old_price = book.price
            book.price = new_price

    book.updated_at = utcnow()
    await db.flush()
    return old_price


async def delete_book(db: AsyncSession, book: Book) -> str:
    """
    Delete a listing and the rows that only make sense while it exists.

    Past order items keep their title/price snapshots with book_id cleared.
    Returns the removed book's item_image so the caller can delete the file.
    """
    open_orders = (await db.execute(
        select(func.count(func.distinct(Order.id)))
        .select_from(Order)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .where(OrderItem.book_id == book.id, Order.status.in_(OPEN_ORDER_STATUSES))
    )).scalar_one()
    if open_orders:
        raise ConflictError(
            f"Cannot delete book: it is part of {open_orders} open order(s)",
            details={"openOrders": open_orders},
        )

    await db.execute(delete(CartItem).where(CartItem.book_id == book.id))
    await db.execute(delete(WishlistItem).where(WishlistItem.book_id == book.id))
    await db.execute(delete(Review).where(Review.book_id == book.id))
    await db.execute(
        update(OrderItem).where(OrderItem.book_id == book.id).values(book_id=None)
    )
    item_image = book.item_image
    await db.delete(book)
    await db.flush()
    logger.info(f"Book deleted: id={book.id}")
    return item_image


# ── Aggregate views ─────────────────────────────────────────────────

async def list_genres(db: AsyncSession) -> list[str]:
    res = await db.execute(select(Book.genre).distinct().order_by(Book.genre))
    return [g for g in res.scalars().all() if g]


async def genre_stats(db: AsyncSession) -> list[dict]:
    res = await db.execute(
        select(
            Book.genre,
            func.count(Book.id),
            func.avg(Book.price),
            func.min(Book.price),
            func.max(Book.price),
        )
        .group_by(Book.genre)
        .order_by(func.count(Book.id).desc(), Book.genre)
    )
    return [
        {
            "genre": genre,
            "count": count,
            "avgPrice": round(avg or 0.0, 2),
            "minPrice": min_price,
            "maxPrice": max_price,
        }
        for genre, count, avg, min_price, max_price in res.all()
    ]


async def top_rated(db: AsyncSession, limit: int = SHORTLIST_SIZE) -> list[Book]:
    res = await db.execute(
        select(Book)
        .where(Book.average_rating > 4)
        .order_by(Book.average_rating.desc(), Book.review_count.desc(), Book.id)
        .limit(limit)
    )
    return list(res.scalars().all())


async def low_stock(db: AsyncSession, limit: int = SHORTLIST_SIZE) -> list[Book]:
    res = await db.execute(select(Book).order_by(Book.stock.asc(), Book.id).limit(limit))
    return list(res.scalars().all())


async def list_seller_books(db: AsyncSession, seller_id: int, *, limit: int, offset: int) -> tuple[list[Book], int]:
    total = (await db.execute(
        select(func.count(Book.id)).where(Book.seller_id == seller_id)
    )).scalar_one()
    res = await db.execute(
        select(Book)
        .where(Book.seller_id == seller_id)
        .order_by(Book.created_at.desc(), Book.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def new_arrivals(db: AsyncSession, limit: int = SHORTLIST_SIZE) -> list[Book]:
    res = await db.execute(select(Book).order_by(Book.created_at.desc(), Book.id.desc()).limit(limit))
    return list(res.scalars().all())
