from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from decimal import Decimal
from backend.app.core.constants import MAX_PRODUCT_IMAGES
from backend.app.core.validation import sanitize_user_input, validate_phone_number


# --- Users ---
class UserUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def sanitize_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return sanitize_user_input(v, max_length=255)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return v
        return validate_phone_number(v)


# --- Catalog ---
class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: Optional[Decimal] = Field(default=None, ge=0)
    originalprice: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    stock_number: int = Field(default=0, ge=0)
    is_active: bool = True
    product_images: List[str] = Field(default_factory=list, max_length=MAX_PRODUCT_IMAGES)
    description: Optional[str] = None
    features: Optional[List[str]] = None
    specifications: Optional[dict] = None

    @field_validator("name", "description")
    @classmethod
    def sanitize_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return sanitize_user_input(v, max_length=5000)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    price: Optional[Decimal] = Field(default=None, ge=0)
    originalprice: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = None
    stock_number: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    product_images: Optional[List[str]] = Field(default=None, max_length=MAX_PRODUCT_IMAGES)
    description: Optional[str] = None
    features: Optional[List[str]] = None
    specifications: Optional[dict] = None


class ProductDetailsUpdate(BaseModel):
    description: Optional[str] = None
    features: Optional[List[str]] = None
    specifications: Optional[dict] = None


class ProductImagesUpdate(BaseModel):
    urls: List[str] = Field(max_length=MAX_PRODUCT_IMAGES)


class VariationCreate(BaseModel):
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: int = Field(default=0, ge=0)
    price_adjustment: Decimal = Decimal(0)
    sku: Optional[str] = None


class VariationUpdate(BaseModel):
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    price_adjustment: Optional[Decimal] = None
    sku: Optional[str] = None


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None

    @field_validator("comment")
    @classmethod
    def sanitize_comment(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return sanitize_user_input(v, max_length=2000)


# --- Cart / wishlist ---
class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(default=1, gt=0)


class CartQuantityUpdate(BaseModel):
    # Values below 1 remove the line
    quantity: int


class WishlistItemAdd(BaseModel):
    product_id: int


# --- Orders ---
class OrderItemIn(BaseModel):
    product_id: int
    variation_id: Optional[int] = None
    quantity: int = Field(gt=0)
    # Price shown to the shopper; only compared against the server price
    price: Optional[Decimal] = None


class OrderCreate(BaseModel):
    phone_number: str
    items: List[OrderItemIn] = Field(min_length=1)
    affiliate_code: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone_number(v)

    @field_validator("affiliate_code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip().upper()


class AvailabilityCheck(BaseModel):
    items: List[OrderItemIn] = Field(min_length=1)


class OrderStatusUpdate(BaseModel):
    status: str


# --- Affiliates ---
class AffiliateCodeCheck(BaseModel):
    code: Optional[str] = None


class AffiliateJoin(BaseModel):
    phone_number: str
    referer_code: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone_number(v)


class WithdrawalCreate(BaseModel):
    amount: Decimal = Field(gt=0, decimal_places=2)
    phone_number: str

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return validate_phone_number(v)


class WithdrawalCancel(BaseModel):
    reason: Optional[str] = None


# --- Admin ---
class PaymentStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None


class ReferralCommissionCreate(BaseModel):
    referer_code: str
    new_affiliate_code: str
    amount: Optional[Decimal] = Field(default=None, gt=0)
    payment_id: Optional[str] = None

    @field_validator("referer_code", "new_affiliate_code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()
