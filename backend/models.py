"""
Pydantic models for request/response validation.

Clients speak camelCase; Python code uses snake_case names with aliases.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator, model_validator

from domain.enums import OrderStatus, PaymentMethod


class ApiModel(BaseModel):
    """Shared base — allows construction by Python name or alias, and from ORM rows."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    @classmethod
    def serialize(cls, obj: Any) -> dict:
        """ORM row (or dict) -> JSON-ready dict with camelCase keys."""
        return cls.model_validate(obj).model_dump(mode="json", by_alias=True)


def _passwords_match(password: str, confirm: str) -> None:
    if password != confirm:
        raise ValueError("Passwords are not the same!")


# ── Account Models ──────────────────────────────────────────────────

class AddressIn(ApiModel):
    street: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    pincode: Optional[str] = Field(None, max_length=20)


class AddressOut(ApiModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class SignupRequest(ApiModel):
    """Create an account. `role` may be "user" or "seller"."""
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    password_confirm: str = Field(..., alias="passwordConfirm")
    role: str = Field("user", description="user | seller")
    address: Optional[AddressIn] = None
    phone: Optional[str] = Field(None, max_length=30)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @model_validator(mode="after")
    def _check_confirm(self):
        _passwords_match(self.password, self.password_confirm)
        return self


class AdminSignupRequest(SignupRequest):
    signup_key: Optional[str] = Field(None, alias="signupKey")


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    role: Optional[str] = Field(None, description="Restrict login to this role")


class UpdateMeRequest(ApiModel):
    """Profile update. Unknown keys are kept so password fields can be rejected explicitly."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    address: Optional[AddressIn] = None
    phone: Optional[str] = Field(None, max_length=30)


class UpdatePasswordRequest(ApiModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    password: str = Field(..., min_length=8, max_length=128)
    password_confirm: str = Field(..., alias="passwordConfirm")

    @model_validator(mode="after")
    def _check_confirm(self):
        _passwords_match(self.password, self.password_confirm)
        return self


class ForgotPasswordRequest(ApiModel):
    email: EmailStr


class ResetPasswordRequest(ApiModel):
    password: str = Field(..., min_length=8, max_length=128)
    password_confirm: str = Field(..., alias="passwordConfirm")

    @model_validator(mode="after")
    def _check_confirm(self):
        _passwords_match(self.password, self.password_confirm)
        return self


class UserOut(ApiModel):
    id: int
    name: str
    email: str
    role: str
    address: AddressOut
    phone: Optional[str] = None
    active: bool = True
    created_at: Optional[datetime] = Field(None, alias="createdAt")


# ── Book Models ─────────────────────────────────────────────────────

class BookOut(ApiModel):
    id: int
    title: str
    author: str
    genre: str
    description: str
    price: float
    item_image: str = Field(..., alias="itemImage")
    stock: int
    seller_id: int = Field(..., alias="sellerId")
    seller_name: str = Field(..., alias="sellerName")
    average_rating: float = Field(0.0, alias="averageRating")
    review_count: int = Field(0, alias="reviewCount")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @computed_field(alias="imageUrl")
    @property
    def image_url(self) -> str:
        if self.item_image.startswith(("http://", "https://", "/")):
            return self.item_image
        return f"/uploads/{self.item_image}"


# ── Review Models ───────────────────────────────────────────────────

class ReviewCreate(ApiModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)

    @field_validator("comment")
    @classmethod
    def _strip_comment(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Review can not be empty!")
        return v


class ReviewUpdate(ApiModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1, max_length=1000)


class ReviewOut(ApiModel):
    id: int
    book_id: int = Field(..., alias="bookId")
    user_id: int = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    rating: int
    comment: str
    verified: bool = False
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


# ── Cart Models ─────────────────────────────────────────────────────

class CartItemAdd(ApiModel):
    book_id: int = Field(..., alias="bookId", ge=1)
    quantity: int = Field(1, ge=1, le=99)


class CartItemUpdate(ApiModel):
    quantity: int = Field(..., ge=0, le=99, description="0 removes the line")


class CartLineOut(ApiModel):
    book_id: int = Field(..., alias="bookId")
    quantity: int
    unit_price: float = Field(..., alias="unitPrice")
    line_total: float = Field(..., alias="lineTotal")
    book: BookOut


class CartOut(ApiModel):
    items: List[CartLineOut]
    item_count: int = Field(..., alias="itemCount")
    total: float


# ── Order Models ────────────────────────────────────────────────────

class OrderItemIn(ApiModel):
    book_id: int = Field(..., alias="bookId", ge=1)
    quantity: int = Field(..., ge=1, le=999)


class ShippingAddressIn(ApiModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=r"^\d{6}$", description="6-digit postal code")
    country: Optional[str] = Field(None, max_length=100)


class OrderCreate(ApiModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_address: ShippingAddressIn = Field(..., alias="shippingAddress")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")


class CheckoutRequest(ApiModel):
    shipping_address: ShippingAddressIn = Field(..., alias="shippingAddress")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")


class OrderStatusUpdate(ApiModel):
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=300)


class TrackingUpdate(ApiModel):
    tracking_number: str = Field(..., alias="trackingNumber", min_length=1, max_length=100)
    courier: Optional[str] = Field(None, max_length=100)


class ShippingAddressOut(ApiModel):
    street: str
    city: str
    state: str
    pincode: str
    country: Optional[str] = None


class OrderItemOut(ApiModel):
    book_id: Optional[int] = Field(None, alias="bookId")
    title: str
    quantity: int
    unit_price: float = Field(..., alias="unitPrice")
    line_total: float = Field(..., alias="lineTotal")


class StatusHistoryOut(ApiModel):
    status: str
    note: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="timestamp")


class OrderOut(ApiModel):
    id: int
    user_id: int = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    seller_id: int = Field(..., alias="sellerId")
    status: str
    payment_method: str = Field(..., alias="paymentMethod")
    payment_status: str = Field(..., alias="paymentStatus")
    total_amount: float = Field(..., alias="totalAmount")
    shipping_address: ShippingAddressOut = Field(..., alias="shippingAddress")
    tracking_number: Optional[str] = Field(None, alias="trackingNumber")
    courier: Optional[str] = None
    delivered_at: Optional[datetime] = Field(None, alias="deliveredAt")
    items: List[OrderItemOut] = Field(default_factory=list)
    status_history: List[StatusHistoryOut] = Field(default_factory=list, alias="statusHistory")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


# ── Wishlist Models ─────────────────────────────────────────────────

class WishlistAdd(ApiModel):
    book_id: int = Field(..., alias="bookId", ge=1)


class WishlistItemOut(ApiModel):
    id: int
    user_id: int = Field(..., alias="userId")
    book_id: int = Field(..., alias="bookId")
    user_name: Optional[str] = Field(None, alias="userName")
    title: str
    author: Optional[str] = None
    genre: Optional[str] = None
    price: Optional[float] = None
    item_image: Optional[str] = Field(None, alias="itemImage")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
