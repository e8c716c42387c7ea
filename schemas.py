"""
Schemas for the ShopFlow admin API

Request bodies are validated with the Pydantic models below. Stored documents
keep the camelCase field names the storefront writes, so the models use the
same names. Collections: "users", "orders", "products", "vendors" and
"vendororders".
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

# ------------ Orders ------------
PAID = "PAID"
CANCELLED = "CANCELLED"
COMPLETED_STATUSES = ("DELIVERED", "COMPLETED")
PENDING_STATUSES = ("PLACED", "CONFIRMED")

def counts_as_revenue(order: Optional[dict]) -> bool:
    """Paid and not cancelled: the only orders that contribute money."""
    if not order:
        return False
    return order.get("paymentStatus") == PAID and order.get("orderStatus") != CANCELLED

# ------------ Users ------------
SENSITIVE_USER_FIELDS = ("password", "password_hash", "salt", "token", "token_expires")
USER_LIST_FIELDS = ("name", "email", "phone", "avatar", "isActive", "isProfileComplete", "createdAt")

class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    avatar: Optional[str] = None

class AddressUpdate(BaseModel):
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    pincode: str = Field(..., min_length=1)
    landmark: Optional[str] = None
    phone: Optional[str] = None

# ------------ Products ------------
VENDOR_PRODUCT_FIELDS = (
    "name", "slug", "price", "stock", "rating", "reviews",
    "category", "subcategory", "isActive", "brand", "vendorSlug",
)
POPULATED_PRODUCT_FIELDS = ("name", "slug", "images", "price")

# ------------ Vendors ------------
VendorStatus = Literal["PENDING", "APPROVED", "REJECTED", "ACTIVE", "INACTIVE"]

class VendorCreate(BaseModel):
    name: str = Field(..., min_length=1)
    slug: Optional[str] = Field(None, description="Normalised into a URL-safe identifier")
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    ownerName: Optional[str] = None
    owner: Optional[str] = None
    commission: float = Field(15, ge=0, le=100)
    status: VendorStatus = "PENDING"
    totalRevenue: float = 0
    revenue: float = 0
    rating: float = 0
    isActive: bool = True

class VendorUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    ownerName: Optional[str] = None
    owner: Optional[str] = None
    commission: Optional[float] = Field(None, ge=0, le=100)
    status: Optional[VendorStatus] = None
    totalRevenue: Optional[float] = None
    revenue: Optional[float] = None
    rating: Optional[float] = None
    isActive: Optional[bool] = None

    # Fields may be left out of an update but never set to null
    @field_validator("name", "slug", "email", "commission", "status", "isActive")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

class CommissionUpdate(BaseModel):
    # Checked by vendors.parse_commission so bad values get a readable message
    commission: Any = None

class Vendor(VendorCreate):
    slug: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
