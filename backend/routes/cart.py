"""
Cart endpoints — the caller's server-side shopping cart.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user
from domain.responses import success_response
from models import CartItemAdd, CartItemUpdate
from services import cart_service

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("")
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await cart_service.get_cart(db, user.id))


@router.post("/items")
async def add_item(
    request: CartItemAdd,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.add_item(db, user_id=user.id, book_id=request.book_id, quantity=request.quantity)
    await db.commit()
    return success_response(await cart_service.get_cart(db, user.id))


@router.patch("/items/{book_id}")
async def update_item(
    book_id: int,
    request: CartItemUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.set_quantity(db, user_id=user.id, book_id=book_id, quantity=request.quantity)
    await db.commit()
    return success_response(await cart_service.get_cart(db, user.id))


@router.delete("/items/{book_id}")
async def remove_item(
    book_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.remove_item(db, user_id=user.id, book_id=book_id)
    await db.commit()
    return success_response(await cart_service.get_cart(db, user.id))


@router.delete("")
async def clear_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    removed = await cart_service.clear_cart(db, user.id)
    await db.commit()
    return success_response({"message": "Cart cleared", "removed": removed})
