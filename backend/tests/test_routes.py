"""
Tests for API route endpoints.

Tests: health/banner, error envelopes, catalogue browsing, book CRUD with
cover uploads, reviews, cart, wishlist, order guards, admin and analytics.
"""

import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from config import settings

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _book_form(**overrides) -> dict:
    form = {
        "title": "Dune",
        "author": "Frank Herbert",
        "genre": "Sci-Fi",
        "description": "Spice must flow.",
        "price": "350",
        "stock": "7",
    }
    form.update(overrides)
    return form


class TestHealthEndpoint:
    """Tests for GET /health and the banners."""

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_health_reports_status(self, client):
        response = await client.get("/health")
        assert response.status_code in (200, 503)
        assert "status" in response.json()

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_api_root(self, client):
        response = await client.get("/api")
        assert response.status_code == 200
        assert response.json()["message"] == "Welcome to BookNest API"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_banner_lists_endpoints(self, client):
        response = await client.get("/")
        assert response.json()["endpoints"]["books"] == "/api/books"


class TestErrorEnvelope:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/api/nothing-here")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "not_found"
        assert "/api/nothing-here" in body["error"]["message"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_validation_error_is_400(self, client):
        response = await client.post("/api/auth/signup", json={
            "name": "Riya", "email": "riya@booknest.io", "password": "longenough", "passwordConfirm": "nope-nope",
        })
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validation_error"
        assert error["message"] == "Passwords are not the same!"
        assert error["details"]["errors"][0]["message"] == "Passwords are not the same!"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_field_names_field(self, client):
        response = await client.post("/api/auth/login", json={"password": "x"})
        assert response.status_code == 400
        fields = [e["field"] for e in response.json()["error"]["details"]["errors"]]
        assert "email" in fields

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_book_is_404(self, client):
        response = await client.get("/api/books/9999")
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Book not found: 9999"


class TestBrowse:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_books_paginates(self, client, make_book, seller):
        for i in range(3):
            await make_book(seller, title=f"Book {i}", price=100 + i)
        response = await client.get("/api/books", params={"limit": 2, "sort": "price_asc"})
        assert response.status_code == 200
        body = response.json()
        assert [b["title"] for b in body["data"]] == ["Book 0", "Book 1"]
        assert body["meta"]["total"] == 3
        assert body["meta"]["hasMore"] is True

        response = await client.get("/api/books", params={"limit": 2, "page": 2, "sort": "price_asc"})
        assert [b["title"] for b in response.json()["data"]] == ["Book 2"]
        assert response.json()["meta"]["page"] == 2

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_bad_sort_is_400(self, client):
        response = await client.get("/api/books", params={"sort": "cheapest"})
        assert response.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_static_listing_routes(self, client, book):
        for path in ("/api/books/genres", "/api/books/stats", "/api/books/top-rated",
                     "/api/books/low-stock", "/api/books/new-arrivals", f"/api/books/seller/{book.seller_id}"):
            response = await client.get(path)
            assert response.status_code == 200, path
        genres = (await client.get("/api/books/genres")).json()["data"]
        assert genres == ["Technology"]


class TestBookWrites:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_seller_creates_book_with_upload(self, client, seller, headers):
        response = await client.post(
            "/api/books",
            data=_book_form(),
            files={"itemImage": ("dune cover.png", PNG_BYTES, "image/png")},
            headers=headers(seller),
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        assert data["sellerId"] == seller.id
        assert data["itemImage"].endswith("-dune-cover.png")
        assert data["imageUrl"] == f"/uploads/{data['itemImage']}"
        assert os.path.exists(os.path.join(settings.upload_dir, data["itemImage"]))

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create_with_image_url(self, client, seller, headers):
        response = await client.post(
            "/api/books",
            data=_book_form(itemImage="https://img.booknest.io/dune.jpg"),
            headers=headers(seller),
        )
        assert response.status_code == 201
        assert response.json()["data"]["imageUrl"] == "https://img.booknest.io/dune.jpg"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create_requires_cover(self, client, seller, headers):
        response = await client.post("/api/books", data=_book_form(), headers=headers(seller))
        assert response.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create_rejects_non_image(self, client, seller, headers):
        response = await client.post(
            "/api/books",
            data=_book_form(),
            files={"itemImage": ("notes.txt", b"hello", "text/plain")},
            headers=headers(seller),
        )
        assert response.status_code == 400
        assert not os.path.isdir(settings.upload_dir) or os.listdir(settings.upload_dir) == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_buyer_cannot_create(self, client, buyer, headers):
        response = await client.post(
            "/api/books",
            data=_book_form(itemImage="https://img.booknest.io/dune.jpg"),
            headers=headers(buyer),
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "permission_denied"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_update_own_book_only(self, client, book, seller, make_user, headers):
        response = await client.patch(f"/api/books/{book.id}", data={"price": "450"}, headers=headers(seller))
        assert response.status_code == 200
        assert response.json()["data"]["price"] == 450.0

        rival = await make_user("seller")
        response = await client.patch(f"/api/books/{book.id}", data={"price": "1"}, headers=headers(rival))
        assert response.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_delete_book(self, client, book, seller, headers):
        response = await client.delete(f"/api/books/{book.id}", headers=headers(seller))
        assert response.status_code == 200
        assert (await client.get(f"/api/books/{book.id}")).status_code == 404

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_failed_create_removes_stored_cover(self, client, seller, headers, monkeypatch):
        from domain.errors import ConflictError
        from services import book_service

        async def _refuse(*args, **kwargs):
            raise ConflictError("Duplicate book")

        monkeypatch.setattr(book_service, "create_book", _refuse)
        response = await client.post(
            "/api/books",
            data=_book_form(),
            files={"itemImage": ("dune.png", PNG_BYTES, "image/png")},
            headers=headers(seller),
        )
        assert response.status_code == 409
        assert os.listdir(settings.upload_dir) == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_replacing_cover_removes_old_file(self, client, seller, headers):
        created = await client.post(
            "/api/books",
            data=_book_form(),
            files={"itemImage": ("first.png", PNG_BYTES, "image/png")},
            headers=headers(seller),
        )
        book = created.json()["data"]
        old_path = os.path.join(settings.upload_dir, book["itemImage"])
        assert os.path.exists(old_path)

        response = await client.patch(
            f"/api/books/{book['id']}",
            files={"itemImage": ("second.png", PNG_BYTES, "image/png")},
            headers=headers(seller),
        )
        assert response.status_code == 200, response.text
        new_name = response.json()["data"]["itemImage"]
        assert new_name.endswith("-second.png")
        assert not os.path.exists(old_path)
        assert os.listdir(settings.upload_dir) == [new_name]

    @pytest.mark.api
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path, role", [("/api/books/{id}", "seller"), ("/api/admin/items/{id}", "admin")])
    async def test_deleting_book_removes_cover(self, client, seller, admin, headers, path, role):
        created = await client.post(
            "/api/books",
            data=_book_form(),
            files={"itemImage": ("dune.png", PNG_BYTES, "image/png")},
            headers=headers(seller),
        )
        book = created.json()["data"]
        assert os.listdir(settings.upload_dir) == [book["itemImage"]]

        actor = seller if role == "seller" else admin
        response = await client.delete(path.format(id=book["id"]), headers=headers(actor))
        assert response.status_code == 200
        assert os.listdir(settings.upload_dir) == []


class TestReviewsApi:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_review_lifecycle(self, client, book, buyer, admin, headers):
        response = await client.post(
            f"/api/books/{book.id}/reviews", json={"rating": 4, "comment": "Solid"}, headers=headers(buyer)
        )
        assert response.status_code == 201
        review = response.json()["data"]
        assert review["verified"] is False

        response = await client.post(
            f"/api/books/{book.id}/reviews", json={"rating": 1, "comment": "Again"}, headers=headers(buyer)
        )
        assert response.status_code == 409

        response = await client.get(f"/api/books/{book.id}")
        assert response.json()["data"]["averageRating"] == 4.0

        response = await client.patch(
            f"/api/books/reviews/{review['id']}", json={"rating": 2}, headers=headers(buyer)
        )
        assert response.json()["data"]["rating"] == 2

        listing = await client.get(f"/api/books/{book.id}/reviews")
        assert listing.json()["meta"]["total"] == 1

        response = await client.delete(f"/api/books/reviews/{review['id']}", headers=headers(admin))
        assert response.status_code == 200

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_review_requires_login(self, client, book):
        response = await client.post(f"/api/books/{book.id}/reviews", json={"rating": 4, "comment": "Solid"})
        assert response.status_code == 401


class TestCartAndWishlist:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_cart_flow(self, client, book, buyer, headers):
        h = headers(buyer)
        response = await client.post("/api/cart/items", json={"bookId": book.id, "quantity": 2}, headers=h)
        assert response.status_code in (200, 201)
        assert response.json()["data"]["itemCount"] == 2

        response = await client.patch(f"/api/cart/items/{book.id}", json={"quantity": 3}, headers=h)
        assert response.json()["data"]["total"] == 3 * 499.0

        response = await client.delete(f"/api/cart/items/{book.id}", headers=h)
        assert response.json()["data"]["items"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_wishlist_flow(self, client, book, buyer, admin, headers):
        response = await client.post("/api/wishlist", json={"bookId": book.id}, headers=headers(buyer))
        assert response.status_code == 201
        assert response.json()["data"]["title"] == book.title

        response = await client.post("/api/wishlist", json={"bookId": book.id}, headers=headers(buyer))
        assert response.status_code == 409

        response = await client.get(f"/api/wishlist/user/{buyer.id}", headers=headers(admin))
        assert len(response.json()["data"]) == 1
        response = await client.get(f"/api/wishlist/user/{buyer.id}", headers=headers(buyer))
        assert response.status_code == 403

        response = await client.delete(f"/api/wishlist/{book.id}", headers=headers(buyer))
        assert response.status_code == 200
        assert (await client.get("/api/wishlist", headers=headers(buyer))).json()["data"] == []


class TestOrderGuards:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_checkout_with_empty_cart(self, client, buyer, headers, shipping_address):
        response = await client.post(
            "/api/orders/checkout",
            json={"shippingAddress": shipping_address, "paymentMethod": "cod"},
            headers=headers(buyer),
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["message"] == "Your cart is empty"
        # Same code as a request-body validation failure
        assert error["code"] == "validation_error"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_buyer_cannot_list_all_orders(self, client, buyer, headers):
        response = await client.get("/api/orders", headers=headers(buyer))
        assert response.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_bad_pincode(self, client, book, buyer, headers):
        response = await client.post(
            "/api/orders",
            json={
                "items": [{"bookId": book.id, "quantity": 1}],
                "shippingAddress": {"street": "1", "city": "Pune", "state": "MH", "pincode": "4110"},
                "paymentMethod": "cod",
            },
            headers=headers(buyer),
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["errors"][0]["field"] == "shippingAddress.pincode"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_seller_cannot_view_other_sellers_orders(self, client, seller, make_user, headers):
        rival = await make_user("seller")
        response = await client.get(f"/api/orders/seller/{rival.id}", headers=headers(seller))
        assert response.status_code == 403


class TestAdminAndAnalytics:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_routes_require_admin(self, client, seller, headers):
        for path in ("/api/admin/users", "/api/admin/orders", "/api/admin/analytics"):
            response = await client.get(path, headers=headers(seller))
            assert response.status_code == 403, path

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_deactivates_user(self, client, admin, buyer, headers):
        response = await client.delete(f"/api/admin/users/{buyer.id}", headers=headers(admin))
        assert response.status_code == 200
        assert response.json()["data"]["active"] is False

        # The deactivated user's token stops working
        response = await client.get("/api/auth/me", headers=headers(buyer))
        assert response.status_code == 401

        response = await client.patch(f"/api/admin/users/{buyer.id}/activate", headers=headers(admin))
        assert response.json()["data"]["active"] is True

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_lists_users_by_role(self, client, admin, seller, buyer, headers):
        response = await client.get("/api/admin/users", params={"role": "seller"}, headers=headers(admin))
        body = response.json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["email"] == seller.email

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_admin_removes_item(self, client, admin, book, headers):
        response = await client.delete(f"/api/admin/items/{book.id}", headers=headers(admin))
        assert response.status_code == 200

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_seller_analytics(self, client, seller, book, buyer, headers):
        for path in ("/api/seller/analytics", "/api/seller/analytics/inventory", "/api/seller/analytics/reviews"):
            response = await client.get(path, headers=headers(seller))
            assert response.status_code == 200, path
        response = await client.get("/api/seller/analytics", headers=headers(buyer))
        assert response.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_recommendations(self, client, buyer, book, headers):
        assert (await client.get("/api/recommendations/popular")).status_code == 200
        assert (await client.get("/api/recommendations/trending")).status_code == 200
        response = await client.get("/api/recommendations", headers=headers(buyer))
        assert response.status_code == 200
        assert (await client.get("/api/recommendations")).status_code == 401
        assert (await client.get(f"/api/books/{book.id}/similar")).status_code == 200
