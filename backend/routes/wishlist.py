"""
Wishlist endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user, require_admin
from domain.responses import success_response
from models import WishlistAdd, WishlistItemOut
from services import wishlist_service

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


def _items(items) -> list[dict]:
    return [WishlistItemOut.serialize(i) for i in items]


@router.get("")
async def my_wishlist(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(_items(await wishlist_service.list_items(db, user.id)))


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_to_wishlist(
    request: WishlistAdd,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    item = await wishlist_service.add_item(db, user=user, book_id=request.book_id)
    await db.commit()
    return success_response(WishlistItemOut.serialize(item))


@router.delete("/{book_id}")
async def remove_from_wishlist(
    book_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await wishlist_service.remove_item(db, user_id=user.id, book_id=book_id)
    await db.commit()
    return success_response({"message": "Removed from wishlist", "bookId": book_id})


@router.get("/user/{user_id}")
async def user_wishlist(
    user_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(_items(await wishlist_service.list_items(db, user_id)))
