"""
SQLAlchemy ORM models for the BookNest API.

Tables:
    users                 — accounts for buyers, sellers and admins
    books                 — catalogue listings owned by a seller
    reviews               — one rating/comment per user per book
    orders                — one order per buyer per seller at checkout
    order_items           — book lines of an order (title/price snapshots)
    order_status_history  — audit trail of every status change
    cart_items            — server-side shopping cart lines
    wishlist_items        — denormalised per-user favourites
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey,
    UniqueConstraint, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """A BookNest account. `role` drives route authorization."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(254), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user", index=True)  # "user" | "seller" | "admin"

    # Address (flattened)
    street = Column(String(200), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    pincode = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)

    active = Column(Boolean, nullable=False, default=True)

    # Session invalidation + password reset
    password_changed_at = Column(DateTime, nullable=True)
    password_reset_token = Column(String(64), nullable=True, index=True)  # sha256 hex of the raw token
    password_reset_expires = Column(DateTime, nullable=True)

    # Brute-force lockout
    login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def address(self) -> dict:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
        }

    def is_locked(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return self.lock_until is not None and self.lock_until > now

    def changed_password_after(self, issued_at: int) -> bool:
        """True when the password changed after a token's `iat` (epoch seconds)."""
        if not self.password_changed_at:
            return False
        changed = int(self.password_changed_at.replace(tzinfo=timezone.utc).timestamp())
        return issued_at < changed


class Book(Base):
    """A catalogue listing."""
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(300), nullable=False, index=True)
    author = Column(String(200), nullable=False, index=True)
    genre = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    item_image = Column(String(500), nullable=False)  # stored file name or external URL
    stock = Column(Integer, nullable=False, default=0)

    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    seller_name = Column(String(100), nullable=False)

    average_rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_books_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_books_stock_non_negative"),
        # Seller listing page: filter by seller, newest first
        Index("ix_books_seller_created", "seller_id", "created_at"),
    )


class Review(Base):
    """A user's rating of a book. One per (book, user)."""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_name = Column(String(100), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)
    verified = Column(Boolean, nullable=False, default=False)  # reviewer received the book
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("book_id", "user_id", name="uq_review_book_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        Index("ix_reviews_book_rating", "book_id", "rating"),
    )


class Order(Base):
    """
    A purchase from a single seller.

    Checkout splits a cart into one order per seller so each seller drives
    the status of their own shipment.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_name = Column(String(100), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_method = Column(String(20), nullable=False)  # cod | card | upi | netbanking
    payment_status = Column(String(20), nullable=False, default="pending")
    total_amount = Column(Float, nullable=False, default=0.0)

    # Shipping address (flattened)
    ship_street = Column(String(200), nullable=False)
    ship_city = Column(String(100), nullable=False)
    ship_state = Column(String(100), nullable=False)
    ship_pincode = Column(String(6), nullable=False)
    ship_country = Column(String(100), nullable=True)

    tracking_number = Column(String(100), nullable=True)
    courier = Column(String(100), nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderStatusHistory.id",
    )

    __table_args__ = (
        # Buyer history: filter by user, newest first
        Index("ix_orders_user_created", "user_id", "created_at"),
        # Seller dashboards: filter by seller, newest first
        Index("ix_orders_seller_created", "seller_id", "created_at"),
    )

    @property
    def shipping_address(self) -> dict:
        return {
            "street": self.ship_street,
            "city": self.ship_city,
            "state": self.ship_state,
            "pincode": self.ship_pincode,
            "country": self.ship_country,
        }


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(300), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False, default=0.0)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
    )

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    note = Column(String(300), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    order = relationship("Order", back_populates="status_history")


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_cart_user_book"),
    )


class WishlistItem(Base):
    """Denormalised favourite so the wishlist renders without joins."""
    __tablename__ = "wishlist_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    user_name = Column(String(100), nullable=True)
    title = Column(String(300), nullable=False)
    author = Column(String(200), nullable=True)
    genre = Column(String(100), nullable=True)
    price = Column(Float, nullable=True)
    item_image = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_wishlist_user_book"),
    )
