"""
Pytest configuration and shared fixtures for BookNest tests.

Provides an in-memory SQLite DB per test, an httpx client bound to the ASGI
app with `get_db` overridden, and factories for users, books and tokens.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from typing import AsyncGenerator

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from database import Base, get_db
from config import settings

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.expose_reset_token = True
settings.admin_signup_key = ""

DEFAULT_PASSWORD = "pass1234!"


@pytest.fixture(autouse=True)
def _isolate_globals(tmp_path):
    """Fresh rate-limit buckets, empty notification hub, private upload dir."""
    from middleware.rate_limit import _limiter
    from services.notification_service import hub

    _limiter.reset()
    hub._clients.clear()
    original_upload_dir = settings.upload_dir
    settings.upload_dir = str(tmp_path / "uploads")
    yield
    settings.upload_dir = original_upload_dir
    hub._clients.clear()


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client bound to the app with the in-memory database.

    Overrides get_db dependency to use test DB session.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# ── Factories ────────────────────────────────────────────────────────


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: await make_user(role="seller", email=...) -> User (committed)."""
    from services import auth_service

    counter = {"n": 0}

    async def _make(role: str = "user", email: str | None = None, name: str | None = None,
                    password: str = DEFAULT_PASSWORD):
        counter["n"] += 1
        user = await auth_service.create_account(
            db_session,
            name=name or f"{role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@booknest.io",
            password=password,
            role=role,
        )
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_book(db_session: AsyncSession):
    """Factory: await make_book(seller, title=..., price=..., stock=...) -> Book (committed)."""
    from db_models import Book

    async def _make(seller, title: str = "The Pragmatic Programmer", author: str = "Andrew Hunt",
                    genre: str = "Technology", price: float = 499.0, stock: int = 10, **extra):
        book = Book(
            title=title,
            author=author,
            genre=genre,
            description=extra.pop("description", "A classic."),
            price=price,
            stock=stock,
            item_image=extra.pop("item_image", "https://img.booknest.io/cover.jpg"),
            seller_id=seller.id,
            seller_name=seller.name,
            **extra,
        )
        db_session.add(book)
        await db_session.commit()
        return book

    return _make


@pytest.fixture
async def buyer(make_user):
    return await make_user("user", email="reader@booknest.io", name="Riya Reader")


@pytest.fixture
async def seller(make_user):
    return await make_user("seller", email="shop@booknest.io", name="Sam Seller")


@pytest.fixture
async def admin(make_user):
    return await make_user("admin", email="root@booknest.io", name="Ada Admin")


@pytest.fixture
async def book(make_book, seller):
    return await make_book(seller)


def auth_header(user) -> dict:
    from middleware.auth import issue_access_token
    token = issue_access_token(user_id=user.id, email=user.email, role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    """Callable fixture: headers(user) -> Authorization header dict."""
    return auth_header


@pytest.fixture
def shipping_address() -> dict:
    return {"street": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001"}
