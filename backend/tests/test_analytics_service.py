"""
Unit tests for seller and admin analytics.
"""
import pytest

from services import analytics_service, order_service, review_service
from db_models import utcnow

ADDRESS = {"street": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001"}


@pytest.fixture
async def sales(db_session, buyer, seller, make_user, make_book):
    """Two sellers; one delivered order, one cancelled, one pending."""
    other_seller = await make_user("seller", name="Other Shop")
    dune = await make_book(seller, title="Dune", genre="Sci-Fi", price=300.0, stock=10)
    emma = await make_book(seller, title="Emma", genre="Classics", price=100.0, stock=3)
    await make_book(seller, title="Gone", genre="Classics", price=80.0, stock=0)
    elsewhere = await make_book(other_seller, title="Elsewhere", price=50.0, stock=10)

    (delivered,), _ = await order_service.place_orders(
        db_session, buyer=buyer, lines=[(dune.id, 2)], shipping_address=ADDRESS, payment_method="card")
    for status in ("confirmed", "processing", "shipped", "delivered"):
        await order_service.apply_status(db_session, delivered, status)

    (cancelled,), _ = await order_service.place_orders(
        db_session, buyer=buyer, lines=[(emma.id, 1)], shipping_address=ADDRESS, payment_method="cod")
    await order_service.apply_status(db_session, cancelled, "cancelled")

    await order_service.place_orders(
        db_session, buyer=buyer, lines=[(elsewhere.id, 1)], shipping_address=ADDRESS, payment_method="cod")

    await review_service.add_review(db_session, book=dune, user=buyer, rating=5, comment="Epic")
    await db_session.commit()
    return {"dune": dune, "emma": emma, "other_seller": other_seller}


@pytest.mark.asyncio
async def test_seller_dashboard(db_session, seller, sales):
    data = await analytics_service.seller_dashboard(db_session, seller.id)
    assert data["totalSales"] == 600.0
    assert data["totalOrders"] == 2
    assert data["totalBooks"] == 3
    assert {s["status"] for s in data["salesByStatus"]} == {"delivered", "cancelled"}
    assert data["topSellingBooks"] == [
        {"bookId": sales["dune"].id, "title": "Dune", "totalSold": 2, "totalRevenue": 600.0}
    ]
    now = utcnow()
    assert data["monthlySales"][0] == {"year": now.year, "month": now.month, "total": 600.0, "count": 1}


@pytest.mark.asyncio
async def test_seller_inventory(db_session, seller, sales):
    data = await analytics_service.seller_inventory(db_session, seller.id)
    assert data["totalBooks"] == 3
    # Dune 8 left, Emma 3 restored after cancel, Gone 0
    assert data["inventoryValue"] == 8 * 300.0 + 3 * 100.0
    assert [b["title"] for b in data["lowStock"]] == ["Emma"]
    assert [b["title"] for b in data["outOfStock"]] == ["Gone"]
    assert data["booksByGenre"]["Classics"]["count"] == 2


@pytest.mark.asyncio
async def test_seller_reviews(db_session, seller, sales):
    data = await analytics_service.seller_reviews(db_session, seller.id, days=7)
    assert data["totalReviews"] == 1
    assert data["averageRating"] == 5.0
    assert data["ratingDistribution"] == {"1": 0, "2": 0, "3": 0, "4": 0, "5": 1}
    assert data["recentReviews"][0]["comment"] == "Epic"
    assert data["recentReviews"][0]["verified"] is True
    assert sum(day["count"] for day in data["reviewTrend"].values()) == 1


@pytest.mark.asyncio
async def test_seller_without_activity(db_session, make_user):
    newcomer = await make_user("seller")
    data = await analytics_service.seller_dashboard(db_session, newcomer.id)
    assert data["totalSales"] == 0.0
    assert data["averageRating"] == 0.0
    assert data["monthlySales"] == []


@pytest.mark.asyncio
async def test_admin_dashboard(db_session, seller, sales):
    data = await analytics_service.admin_dashboard(db_session)
    assert data["totalUsers"] == 1
    assert data["totalSellers"] == 2
    assert data["totalBooks"] == 4
    assert data["totalOrders"] == 3
    assert data["totalRevenue"] == 650.0
    assert data["topSellers"][0] == {"sellerId": seller.id, "name": seller.name, "totalSales": 600.0, "totalOrders": 1}
    assert data["topSellingBooks"][0]["title"] == "Dune"


@pytest.mark.asyncio
async def test_admin_user_analytics(db_session, buyer, admin, sales):
    data = await analytics_service.admin_user_analytics(db_session, days=30)
    assert data["totalUsers"] == 4
    assert data["newUsers"] == 4
    assert data["activeBuyers"] == 1
    assert data["usersByRole"] == {"user": 1, "seller": 2, "admin": 1}
    assert data["topReviewers"] == [
        {"userId": buyer.id, "name": buyer.name, "reviewCount": 1, "averageRating": 5.0}
    ]
