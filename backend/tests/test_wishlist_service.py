"""
Unit tests for the wishlist service.
"""
import pytest

from domain.errors import ConflictError, NotFoundError
from services import wishlist_service


@pytest.mark.asyncio
async def test_add_snapshots_book(db_session, buyer, book):
    item = await wishlist_service.add_item(db_session, user=buyer, book_id=book.id)
    assert item.title == book.title
    assert item.price == book.price
    assert item.user_name == buyer.name

    items = await wishlist_service.list_items(db_session, buyer.id)
    assert [i.book_id for i in items] == [book.id]


@pytest.mark.asyncio
async def test_add_twice_conflicts(db_session, buyer, book):
    await wishlist_service.add_item(db_session, user=buyer, book_id=book.id)
    with pytest.raises(ConflictError):
        await wishlist_service.add_item(db_session, user=buyer, book_id=book.id)


@pytest.mark.asyncio
async def test_add_unknown_book(db_session, buyer):
    with pytest.raises(NotFoundError):
        await wishlist_service.add_item(db_session, user=buyer, book_id=777)


@pytest.mark.asyncio
async def test_remove_only_own_entry(db_session, buyer, make_user, book):
    other = await make_user("user")
    await wishlist_service.add_item(db_session, user=buyer, book_id=book.id)
    await wishlist_service.add_item(db_session, user=other, book_id=book.id)

    await wishlist_service.remove_item(db_session, user_id=buyer.id, book_id=book.id)
    assert await wishlist_service.list_items(db_session, buyer.id) == []
    assert len(await wishlist_service.list_items(db_session, other.id)) == 1

    with pytest.raises(NotFoundError):
        await wishlist_service.remove_item(db_session, user_id=buyer.id, book_id=book.id)
