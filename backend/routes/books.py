"""
Book endpoints — catalogue browsing, seller listings, reviews, similar books.

Create/update take multipart forms so a cover image can be uploaded; the
`itemImage` field may carry either a file or an image URL string.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from database import get_db
from db_models import User
from deps import Pagination, get_current_user, pagination_params, require_seller_or_admin
from domain.errors import ValidationError
from domain.responses import paginated_response, success_response
from models import BookOut, ReviewCreate, ReviewOut, ReviewUpdate
from services import book_service, notification_service, recommendation_service, review_service, upload_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/books", tags=["books"])


async def _cover_from_form(request: Request) -> tuple[Optional[StarletteUploadFile], Optional[str]]:
    """Split the `itemImage` form value into (uploaded file, URL string)."""
    form = await request.form()
    value = form.get("itemImage")
    if isinstance(value, StarletteUploadFile):
        return (value, None) if value.filename else (None, None)
    if isinstance(value, str) and value.strip():
        return None, value.strip()
    return None, None


def _books(items) -> list[dict]:
    return [BookOut.serialize(b) for b in items]


# ── Browse ──────────────────────────────────────────────────────────

@router.get("")
async def list_books(
    q: Optional[str] = Query(None, max_length=200, description="Search title, author or genre"),
    genre: Optional[str] = Query(None, max_length=100),
    author: Optional[str] = Query(None, max_length=200),
    seller_id: Optional[int] = Query(None, alias="sellerId", ge=1),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=5),
    availability: str = Query("all", description="all | in_stock | out_of_stock"),
    sort: str = Query("relevance", description="relevance | newest | price_asc | price_desc | rating | best_selling"),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    books, total = await book_service.list_books(
        db,
        q=q,
        genre=genre,
        author=author,
        seller_id=seller_id,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
        availability=availability,
        sort=sort,
        limit=page["limit"],
        offset=page["offset"],
    )
    return paginated_response(_books(books), limit=page["limit"], offset=page["offset"], total=total)


@router.get("/genres")
async def list_genres(db: AsyncSession = Depends(get_db)):
    return success_response(await book_service.list_genres(db))


@router.get("/stats")
async def book_stats(db: AsyncSession = Depends(get_db)):
    return success_response(await book_service.genre_stats(db))


@router.get("/top-rated")
async def top_rated(db: AsyncSession = Depends(get_db)):
    return success_response(_books(await book_service.top_rated(db)))


@router.get("/low-stock")
async def low_stock(db: AsyncSession = Depends(get_db)):
    return success_response(_books(await book_service.low_stock(db)))


@router.get("/new-arrivals")
async def new_arrivals(
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    return success_response(_books(await book_service.new_arrivals(db, limit=limit)))


@router.get("/seller/{seller_id}")
async def seller_books(
    seller_id: int,
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    books, total = await book_service.list_seller_books(
        db, seller_id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(_books(books), limit=page["limit"], offset=page["offset"], total=total)


# ── Reviews by id ───────────────────────────────────────────────────

@router.patch("/reviews/{review_id}")
async def update_review(
    review_id: int,
    request: ReviewUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.get_review(db, review_id)
    review = await review_service.update_review(
        db, review, user=user, rating=request.rating, comment=request.comment
    )
    await db.commit()
    return success_response(ReviewOut.serialize(review))


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    review = await review_service.get_review(db, review_id)
    await review_service.delete_review(db, review, user=user)
    await db.commit()
    return success_response({"message": "Review deleted", "reviewId": review_id})


# ── Single book ─────────────────────────────────────────────────────

@router.get("/{book_id}")
async def get_book(book_id: int, db: AsyncSession = Depends(get_db)):
    return success_response(BookOut.serialize(await book_service.get_book(db, book_id)))


@router.get("/{book_id}/similar")
async def similar_books(book_id: int, db: AsyncSession = Depends(get_db)):
    return success_response(_books(await recommendation_service.similar_books(db, book_id)))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_book(
    request: Request,
    title: str = Form(..., min_length=1, max_length=300),
    author: str = Form(..., min_length=1, max_length=200),
    genre: str = Form(..., min_length=1, max_length=100),
    description: str = Form(..., min_length=1, max_length=5000),
    price: float = Form(..., ge=0),
    stock: int = Form(0, ge=0),
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    upload, image_url = await _cover_from_form(request)
    if upload is None and image_url is None:
        raise ValidationError("Please upload a cover image", field="itemImage")

    stored = await upload_service.save_cover(upload) if upload is not None else None
    try:
        book = await book_service.create_book(
            db,
            seller=user,
            title=title,
            author=author,
            genre=genre,
            description=description,
            price=price,
            stock=stock,
            item_image=stored or image_url,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        if stored:
            await upload_service.remove_cover(stored)
        raise

    return success_response(BookOut.serialize(book))


@router.patch("/{book_id}")
async def update_book(
    book_id: int,
    request: Request,
    title: Optional[str] = Form(None, min_length=1, max_length=300),
    author: Optional[str] = Form(None, min_length=1, max_length=200),
    genre: Optional[str] = Form(None, min_length=1, max_length=100),
    description: Optional[str] = Form(None, min_length=1, max_length=5000),
    price: Optional[float] = Form(None, ge=0),
    stock: Optional[int] = Form(None, ge=0),
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    book = await book_service.get_book(db, book_id)
    book_service.ensure_can_modify(user, book)

    upload, image_url = await _cover_from_form(request)
    stored = await upload_service.save_cover(upload) if upload is not None else None
    previous_image = book.item_image
    try:
        old_price = await book_service.update_book(db, book, changes={
            "title": title,
            "author": author,
            "genre": genre,
            "description": description,
            "price": price,
            "stock": stock,
            "item_image": stored or image_url,
        })
        await db.commit()
    except Exception:
        await db.rollback()
        if stored:
            await upload_service.remove_cover(stored)
        raise

    if (stored or image_url) and previous_image != book.item_image:
        await upload_service.remove_cover(previous_image)
    if old_price is not None:
        await notification_service.notify_price_change(book, old_price)

    return success_response(BookOut.serialize(book))


@router.delete("/{book_id}")
async def delete_book(
    book_id: int,
    user: User = Depends(require_seller_or_admin),
    db: AsyncSession = Depends(get_db),
):
    book = await book_service.get_book(db, book_id)
    book_service.ensure_can_modify(user, book)
    item_image = await book_service.delete_book(db, book)
    await db.commit()
    await upload_service.remove_cover(item_image)
    return success_response({"message": "Book deleted", "bookId": book_id})


# ── Reviews of a book ───────────────────────────────────────────────

@router.post("/{book_id}/reviews", status_code=status.HTTP_201_CREATED)
async def add_review(
    book_id: int,
    request: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    book = await book_service.get_book(db, book_id)
    review = await review_service.add_review(
        db, book=book, user=user, rating=request.rating, comment=request.comment
    )
    await db.commit()
    await notification_service.notify_new_review(book, request.rating)
    return success_response(ReviewOut.serialize(review))


@router.get("/{book_id}/reviews")
async def list_reviews(
    book_id: int,
    sort: str = Query("newest", description="newest | highest | lowest"),
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
):
    await book_service.get_book(db, book_id)
    reviews, total = await review_service.list_reviews(
        db, book_id, sort=sort, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [ReviewOut.serialize(r) for r in reviews],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )
