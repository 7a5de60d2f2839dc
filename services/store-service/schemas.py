"""Pydantic schemas for request/response validation."""
import math
import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, ClassVar, Dict, Generic, List, Literal, Optional, Tuple, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator

T = TypeVar("T")

PHONE_PATTERN = re.compile(r"^[\+]?[1-9][\d]{0,15}$")

OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
PaymentMethod = Literal["credit_card", "debit_card", "paypal", "cash_on_delivery"]
SortField = Literal["id", "name", "price", "created_at", "updated_at"]
SortOrder = Literal["asc", "desc"]


def _validate_phone(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    cleaned = re.sub(r"[\s\-\(\)]", "", value)
    if not PHONE_PATTERN.match(cleaned):
        raise ValueError("Please provide a valid phone number")
    return value


PhoneNumber = Annotated[Optional[str], AfterValidator(_validate_phone)]


class PartialUpdate(BaseModel):
    """
    Base for partial update bodies.

    Fields may be left out, but the columns listed in ``non_nullable``
    cannot be cleared with an explicit null.
    """
    non_nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def _reject_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            nulls = [field for field in cls.non_nullable if field in data and data[field] is None]
            if nulls:
                raise ValueError(f"{', '.join(nulls)} cannot be null")
        return data


# --- Envelope ---

class Pagination(BaseModel):
    """Page metadata returned with list endpoints."""
    page: int
    limit: int
    total: int
    totalPages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit) if limit else 0)


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""
    success: bool = True
    message: str
    data: Optional[T] = None
    pagination: Optional[Pagination] = None


class PageParams(BaseModel):
    """Validated paging and sorting parameters."""
    page: int = 1
    limit: int = 10
    sort: SortField = "created_at"
    order: SortOrder = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# --- Auth ---

class RegisterRequest(BaseModel):
    """Schema for registering a client account."""
    email: EmailStr
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    phone: PhoneNumber = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken", min_length=1)


class ProfileUpdateRequest(PartialUpdate):
    non_nullable = ("first_name", "last_name")

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: PhoneNumber = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


class UserResponse(BaseModel):
    """Public view of a user row. Never carries the password hash."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: str
    is_active: bool
    email_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthData(BaseModel):
    user: UserResponse
    accessToken: str
    refreshToken: str


class AccessTokenData(BaseModel):
    accessToken: str


class AdminUserCreate(BaseModel):
    """Schema for an admin creating an account."""
    email: EmailStr
    password: str = Field(min_length=1)
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    phone: PhoneNumber = None
    role: Literal["client", "admin"] = "admin"


class AdminUserUpdate(PartialUpdate):
    non_nullable = ("first_name", "last_name", "role", "is_active", "email_verified")

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    phone: PhoneNumber = None
    role: Optional[Literal["client", "admin"]] = None
    is_active: Optional[bool] = None
    email_verified: Optional[bool] = None


# --- Catalog ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    image_url: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True


class CategoryUpdate(PartialUpdate):
    non_nullable = ("name", "is_active")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    image_url: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(min_length=2, max_length=255)
    description: str = Field(min_length=10, max_length=1000)
    price: Decimal = Field(ge=Decimal("0.01"), max_digits=10, decimal_places=2)
    category_id: Optional[int] = Field(default=None, ge=1)
    image_url: Optional[str] = Field(default=None, max_length=500)
    stock_quantity: int = Field(default=0, ge=0)
    is_active: bool = True


class ProductUpdate(PartialUpdate):
    """Partial product update. Only fields that are sent are written."""
    non_nullable = ("name", "description", "price", "stock_quantity", "is_active")

    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = Field(default=None, min_length=10, max_length=1000)
    price: Optional[Decimal] = Field(default=None, ge=Decimal("0.01"), max_digits=10, decimal_places=2)
    category_id: Optional[int] = Field(default=None, ge=1)
    image_url: Optional[str] = Field(default=None, max_length=500)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class StockUpdateRequest(BaseModel):
    quantity: int = Field(ge=0)
    operation: Literal["decrement", "increment", "set"] = "decrement"


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: float
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    image_url: Optional[str] = None
    stock_quantity: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Cart ---

class AddToCartRequest(BaseModel):
    """Schema for add to cart request."""
    product_id: int = Field(ge=1)
    quantity: int = Field(default=1, ge=1, le=100)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=1, le=100)


class CartItemResponse(BaseModel):
    """Cart line joined with its product."""
    id: int
    product_id: int
    quantity: int
    name: str
    price: float
    image_url: Optional[str] = None
    stock_quantity: int
    subtotal: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CartSummary(BaseModel):
    totalItems: int
    totalPrice: float


# --- Orders ---

class OrderItemRequest(BaseModel):
    product_id: int = Field(ge=1)
    quantity: int = Field(ge=1, le=100)
    price: Optional[Decimal] = Field(default=None, ge=Decimal("0.01"))


class CreateOrderRequest(BaseModel):
    """Checkout request. An empty item list checks out the caller's cart."""
    shipping_address: str = Field(min_length=10, max_length=500)
    billing_address: Optional[str] = Field(default=None, min_length=10, max_length=500)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    items: List[OrderItemRequest] = Field(default_factory=list)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(default=None, max_length=255)


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    note: Optional[str] = Field(default=None, max_length=255)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_name: Optional[str] = None
    product_image: Optional[str] = None
    quantity: int
    price: float
    created_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    order_number: str
    total_amount: float
    status: str
    shipping_address: str
    billing_address: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: str
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = Field(default_factory=list)


class OrderHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    field: str
    from_value: Optional[str] = None
    to_value: str
    changed_by: Optional[int] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None


# --- Payments ---

class PaymentCustomization(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None


class PaymentInitializeRequest(BaseModel):
    """Checkout request forwarded to the Chapa gateway."""
    amount: Decimal = Field(gt=0)
    currency: str = "ETB"
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    tx_ref: Optional[str] = Field(default=None, max_length=100)
    callback_url: Optional[str] = None
    return_url: Optional[str] = None
    customization: Optional[PaymentCustomization] = None
    meta: Optional[Dict[str, Any]] = None
