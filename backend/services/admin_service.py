"""
Admin user management. Deleting a user deactivates the account.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import User, utcnow
from domain.enums import Role
from domain.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def list_users(
    db: AsyncSession,
    *,
    role: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[User], int]:
    conditions = []
    if role is not None:
        if role not in {r.value for r in Role}:
            raise ValidationError(f"Unknown role '{role}'", field="role")
        conditions.append(User.role == role)

    total = (await db.execute(select(func.count(User.id)).where(*conditions))).scalar_one()
    res = await db.execute(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


async def set_active(db: AsyncSession, *, admin: User, user_id: int, active: bool) -> User:
    user = await _get_user(db, user_id)
    if not active and user.id == admin.id:
        raise ValidationError("You cannot deactivate your own account")
    user.active = active
    user.updated_at = utcnow()
    await db.flush()
    logger.info(f"Admin {admin.id} set user {user.id} active={active}")
    return user
