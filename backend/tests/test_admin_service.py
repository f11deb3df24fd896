"""
Unit tests for admin user management.
"""
import pytest

from domain.errors import NotFoundError, ValidationError
from services import admin_service


@pytest.mark.asyncio
async def test_list_users_by_role(db_session, buyer, seller, admin):
    users, total = await admin_service.list_users(db_session)
    assert total == 3

    users, total = await admin_service.list_users(db_session, role="seller")
    assert total == 1 and users[0].id == seller.id

    with pytest.raises(ValidationError):
        await admin_service.list_users(db_session, role="owner")


@pytest.mark.asyncio
async def test_deactivate_and_reactivate(db_session, buyer, admin):
    user = await admin_service.set_active(db_session, admin=admin, user_id=buyer.id, active=False)
    assert user.active is False
    user = await admin_service.set_active(db_session, admin=admin, user_id=buyer.id, active=True)
    assert user.active is True


@pytest.mark.asyncio
async def test_admin_cannot_deactivate_self(db_session, admin):
    with pytest.raises(ValidationError):
        await admin_service.set_active(db_session, admin=admin, user_id=admin.id, active=False)


@pytest.mark.asyncio
async def test_unknown_user(db_session, admin):
    with pytest.raises(NotFoundError):
        await admin_service.set_active(db_session, admin=admin, user_id=4242, active=False)
