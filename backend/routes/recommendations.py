"""
Recommendation endpoints. Similar-book lookups live under /api/books/{id}/similar.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user
from domain.responses import success_response
from models import BookOut
from services import recommendation_service

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


def _books(items) -> list[dict]:
    return [BookOut.serialize(b) for b in items]


@router.get("")
async def for_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(_books(await recommendation_service.personal_recommendations(db, user.id)))


@router.get("/trending")
async def trending(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    return success_response(_books(await recommendation_service.trending_books(db, days=days)))


@router.get("/popular")
async def popular(db: AsyncSession = Depends(get_db)):
    return success_response(_books(await recommendation_service.popular_books(db)))
