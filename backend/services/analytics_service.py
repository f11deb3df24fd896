"""
Analytics service — seller and admin dashboards.

Revenue figures always exclude cancelled orders. Monthly series cover the
last 12 calendar months, newest first.
"""
from datetime import datetime, timedelta

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Book, Order, OrderItem, Review, User, utcnow
from domain.enums import OrderStatus, Role
from models import ReviewOut

NOT_CANCELLED = Order.status != OrderStatus.CANCELLED.value


def _months_ago_start(now: datetime, months: int) -> datetime:
    """First instant of the month `months` before `now`'s month."""
    index = now.year * 12 + (now.month - 1) - months
    return datetime(index // 12, index % 12 + 1, 1)


async def _monthly_sales(db: AsyncSession, *conditions) -> list[dict]:
    since = _months_ago_start(utcnow(), 11)
    year = extract("year", Order.created_at)
    month = extract("month", Order.created_at)
    res = await db.execute(
        select(year, month, func.sum(Order.total_amount), func.count(Order.id))
        .where(NOT_CANCELLED, Order.created_at >= since, *conditions)
        .group_by(year, month)
        .order_by(year.desc(), month.desc())
    )
    return [
        {"year": int(y), "month": int(m), "total": round(total or 0.0, 2), "count": count}
        for y, m, total, count in res.all()
    ]


async def _top_selling_books(db: AsyncSession, limit: int, *conditions) -> list[dict]:
    sold = func.sum(OrderItem.quantity)
    res = await db.execute(
        select(
            OrderItem.book_id,
            func.max(OrderItem.title),
            sold,
            func.sum(OrderItem.quantity * OrderItem.unit_price),
        )
        .join(Order, OrderItem.order_id == Order.id)
        .where(NOT_CANCELLED, OrderItem.book_id.is_not(None), *conditions)
        .group_by(OrderItem.book_id)
        .order_by(sold.desc(), OrderItem.book_id)
        .limit(limit)
    )
    return [
        {"bookId": book_id, "title": title, "totalSold": int(total_sold), "totalRevenue": round(revenue or 0.0, 2)}
        for book_id, title, total_sold, revenue in res.all()
    ]


async def _scalar(db: AsyncSession, stmt):
    return (await db.execute(stmt)).scalar_one()


# ── Seller ──────────────────────────────────────────────────────────

async def seller_dashboard(db: AsyncSession, seller_id: int) -> dict:
    mine = Order.seller_id == seller_id

    total_sales = await _scalar(db, select(func.coalesce(func.sum(Order.total_amount), 0.0)).where(mine, NOT_CANCELLED))
    total_orders = await _scalar(db, select(func.count(Order.id)).where(mine))
    total_books = await _scalar(db, select(func.count(Book.id)).where(Book.seller_id == seller_id))
    avg_rating = await _scalar(db, select(func.avg(Book.average_rating)).where(Book.seller_id == seller_id))

    res = await db.execute(
        select(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0.0))
        .where(mine)
        .group_by(Order.status)
        .order_by(Order.status)
    )
    sales_by_status = [
        {"status": status, "count": count, "total": round(total, 2)}
        for status, count, total in res.all()
    ]

    return {
        "totalSales": round(total_sales, 2),
        "totalOrders": total_orders,
        "totalBooks": total_books,
        "averageRating": round(avg_rating or 0.0, 1),
        "salesByStatus": sales_by_status,
        "monthlySales": await _monthly_sales(db, mine),
        "topSellingBooks": await _top_selling_books(db, 5, mine),
    }


async def seller_inventory(db: AsyncSession, seller_id: int) -> dict:
    res = await db.execute(select(Book).where(Book.seller_id == seller_id).order_by(Book.stock, Book.id))
    books = list(res.scalars().all())

    by_genre: dict[str, dict] = {}
    low_stock = []
    out_of_stock = []
    value = 0.0
    for book in books:
        book_value = book.price * book.stock
        value += book_value
        entry = by_genre.setdefault(book.genre, {"count": 0, "value": 0.0})
        entry["count"] += 1
        entry["value"] = round(entry["value"] + book_value, 2)
        if book.stock == 0:
            out_of_stock.append(book)
        elif book.stock < settings.low_stock_threshold:
            low_stock.append(book)

    def _brief(book: Book) -> dict:
        return {"bookId": book.id, "title": book.title, "stock": book.stock, "price": book.price}

    return {
        "totalBooks": len(books),
        "inventoryValue": round(value, 2),
        "lowStock": [_brief(b) for b in low_stock],
        "outOfStock": [_brief(b) for b in out_of_stock],
        "booksByGenre": by_genre,
    }


async def seller_reviews(db: AsyncSession, seller_id: int, *, days: int = 30) -> dict:
    mine = Review.book_id.in_(select(Book.id).where(Book.seller_id == seller_id))

    total = await _scalar(db, select(func.count(Review.id)).where(mine))
    avg = await _scalar(db, select(func.avg(Review.rating)).where(mine))

    distribution = {str(r): 0 for r in range(1, 6)}
    res = await db.execute(select(Review.rating, func.count(Review.id)).where(mine).group_by(Review.rating))
    for rating, count in res.all():
        distribution[str(rating)] = count

    recent = (await db.execute(
        select(Review).where(mine).order_by(Review.created_at.desc(), Review.id.desc()).limit(5)
    )).scalars().all()

    since = utcnow() - timedelta(days=days)
    trend: dict[str, dict] = {}
    window = (await db.execute(
        select(Review.created_at, Review.rating).where(mine, Review.created_at >= since).order_by(Review.created_at)
    )).all()
    for created_at, rating in window:
        day = trend.setdefault(created_at.date().isoformat(), {"count": 0, "totalRating": 0})
        day["count"] += 1
        day["totalRating"] += rating

    return {
        "totalReviews": total,
        "averageRating": round(float(avg), 1) if avg is not None else 0.0,
        "ratingDistribution": distribution,
        "recentReviews": [ReviewOut.serialize(r) for r in recent],
        "reviewTrend": trend,
    }


# ── Admin ───────────────────────────────────────────────────────────

async def admin_dashboard(db: AsyncSession) -> dict:
    total_users = await _scalar(db, select(func.count(User.id)).where(User.role == Role.USER.value))
    total_sellers = await _scalar(db, select(func.count(User.id)).where(User.role == Role.SELLER.value))
    total_books = await _scalar(db, select(func.count(Book.id)))
    total_orders = await _scalar(db, select(func.count(Order.id)))
    total_revenue = await _scalar(db, select(func.coalesce(func.sum(Order.total_amount), 0.0)).where(NOT_CANCELLED))

    sales = func.sum(Order.total_amount)
    res = await db.execute(
        select(Order.seller_id, User.name, sales, func.count(Order.id))
        .join(User, User.id == Order.seller_id)
        .where(NOT_CANCELLED)
        .group_by(Order.seller_id, User.name)
        .order_by(sales.desc(), Order.seller_id)
        .limit(10)
    )
    top_sellers = [
        {"sellerId": seller_id, "name": name, "totalSales": round(total or 0.0, 2), "totalOrders": count}
        for seller_id, name, total, count in res.all()
    ]

    return {
        "totalUsers": total_users,
        "totalSellers": total_sellers,
        "totalBooks": total_books,
        "totalOrders": total_orders,
        "totalRevenue": round(total_revenue, 2),
        "monthlyRevenue": await _monthly_sales(db),
        "topSellingBooks": await _top_selling_books(db, 10),
        "topSellers": top_sellers,
    }


async def admin_user_analytics(db: AsyncSession, *, days: int = 30) -> dict:
    since = utcnow() - timedelta(days=days)

    total_users = await _scalar(db, select(func.count(User.id)))
    new_users = await _scalar(db, select(func.count(User.id)).where(User.created_at >= since))
    active_buyers = await _scalar(
        db, select(func.count(func.distinct(Order.user_id))).where(Order.created_at >= since)
    )

    res = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
    users_by_role = {r.value: 0 for r in Role}
    for role, count in res.all():
        users_by_role[role] = count

    review_count = func.count(Review.id)
    res = await db.execute(
        select(Review.user_id, func.max(Review.user_name), review_count, func.avg(Review.rating))
        .group_by(Review.user_id)
        .order_by(review_count.desc(), Review.user_id)
        .limit(5)
    )
    top_reviewers = [
        {"userId": user_id, "name": name, "reviewCount": count, "averageRating": round(float(avg), 1)}
        for user_id, name, count, avg in res.all()
    ]

    return {
        "totalUsers": total_users,
        "newUsers": new_users,
        "activeBuyers": active_buyers,
        "usersByRole": users_by_role,
        "topReviewers": top_reviewers,
    }
