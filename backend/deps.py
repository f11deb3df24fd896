"""
Shared FastAPI dependencies.

Routers import from a single place: DB session, current user, role guards,
pagination.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from domain.enums import Role
from domain.errors import PermissionDeniedError, UnauthorizedError
from middleware.auth import NOT_LOGGED_IN_MESSAGE, _parse_bearer_token, resolve_user_from_token


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(20, ge=1, le=100),
    offset: Optional[int] = Query(None, ge=0, le=100_000),
    page: Optional[int] = Query(None, ge=1, le=10_000),
) -> Pagination:
    """`offset` wins over `page`; with neither the first page is returned."""
    if offset is None:
        offset = (page - 1) * limit if page else 0
    return {"limit": limit, "offset": offset}


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Require a valid bearer token; returns the live user row."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError(NOT_LOGGED_IN_MESSAGE)
    return await resolve_user_from_token(db, token)


def require_roles(*roles: Role | str):
    """
    Dependency factory restricting a route to the given roles.

    Usage:
        @router.post("", dependencies=[Depends(require_roles(Role.SELLER, Role.ADMIN))])
    """
    allowed = {r.value if isinstance(r, Role) else r for r in roles}

    async def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise PermissionDeniedError()
        return user

    return _guard


require_admin = require_roles(Role.ADMIN)
require_seller_or_admin = require_roles(Role.SELLER, Role.ADMIN)
