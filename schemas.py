"""
Database Schemas for the Storefront

Define MongoDB collection schemas using Pydantic models.
Each model class name maps to a collection name in lowercase:
- User -> "user"
- Product -> "product"
- Order -> "order"
- Category -> "category"
- Content -> "content"
- Lookbookpost -> "lookbookpost"
- Payupaymentattempt -> "payupaymentattempt"

Request payloads used by the API live at the bottom of this module.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

Role = Literal["customer", "premium_customer", "warehouse_user", "admin", "super_admin"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded"]
PaymentMethod = Literal["stripe", "paypal", "bank_transfer", "cod", "payu"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
ContentType = Literal["homepage", "branding", "social_media", "navigation", "footer", "settings"]

CONTENT_TYPES = ["homepage", "branding", "social_media", "navigation", "footer", "settings"]
PROFILE_FIELDS = ["first_name", "last_name", "address", "city", "postal", "country", "phone"]


# Users
class User(BaseModel):
    email: str = Field(..., description="Unique, lower-cased email address")
    password_hash: str = Field(..., description="bcrypt hash")
    name: str = Field(..., description="Full name")
    role: Role = Field("customer")
    is_active: bool = Field(True)
    profile: Dict[str, Any] = Field(default_factory=dict, description="Whitelisted contact fields")
    wishlist: List[str] = Field(default_factory=list, description="Wishlisted product ids")
    last_login: Optional[datetime] = None
    login_attempts: int = Field(0, ge=0)
    lock_until: Optional[datetime] = None


# Products
class MediaItem(BaseModel):
    url: str
    type: Literal["image", "video"] = "image"
    is_primary: bool = False


class InventoryEntry(BaseModel):
    color: str = Field(..., min_length=1)
    size: str = Field(..., min_length=1)
    quantity: int = Field(0, ge=0)


class Product(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    sku: Optional[str] = Field(None, min_length=1, max_length=50, description="Unique when present")
    description: str = Field(..., min_length=1, max_length=1000)
    short_description: Optional[str] = None
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    show_original_price: bool = False
    discount: float = Field(0, ge=0, le=100, description="Percent off")
    category: str = Field(..., min_length=1)
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    images: List[MediaItem] = Field(default_factory=list)
    variants: List[Dict[str, Any]] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    color_images: Dict[str, List[MediaItem]] = Field(default_factory=dict, description="color -> media")
    size_chart_image: Optional[str] = None
    inventory: List[InventoryEntry] = Field(default_factory=list)
    total_stock: int = Field(0, ge=0, description="Sum of inventory quantities")
    is_active: bool = True
    is_featured: bool = False
    is_new_arrival: bool = False
    tags: List[str] = Field(default_factory=list)
    weight: Optional[float] = None
    dimensions: Dict[str, Any] = Field(default_factory=dict)
    material: Optional[str] = None
    care_instructions: Optional[str] = None
    seo_meta_title: Optional[str] = None
    seo_meta_description: Optional[str] = None
    seo_slug: Optional[str] = None
    average_rating: float = Field(0, ge=0, le=5)
    review_count: int = 0
    sales_count: int = 0
    view_count: int = 0

    @field_validator("name", "description", "category", "sku")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


# Orders
class Address(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderItem(BaseModel):
    """Snapshot of a product at purchase time"""
    product_id: str
    name: str
    sku: str = ""
    image: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    size: str = ""
    color: str = ""
    subtotal: float = Field(..., ge=0)


class Payment(BaseModel):
    method: PaymentMethod
    status: PaymentStatus = "pending"
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None


class Discount(BaseModel):
    code: Optional[str] = None
    amount: float = Field(0, ge=0)
    type: Literal["percentage", "fixed"] = "fixed"


class Tracking(BaseModel):
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class StatusEntry(BaseModel):
    status: OrderStatus
    timestamp: datetime
    note: str = ""
    updated_by: Optional[str] = None


class Order(BaseModel):
    order_number: str = Field(..., description="ORD + clock digits + random digits")
    user_id: str
    items: List[OrderItem]
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    discount: Discount = Field(default_factory=Discount)
    total: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    payment: Payment
    shipping_address: Address
    billing_address: Address
    tracking: Tracking = Field(default_factory=Tracking)
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    status_history: List[StatusEntry] = Field(default_factory=list)


# Categories
class Category(BaseModel):
    name: str = Field(..., min_length=1)
    subcategories: List[str] = Field(default_factory=list)
    is_active: bool = True


# Content blocks
class Content(BaseModel):
    type: ContentType
    data: Dict[str, Any] = Field(default_factory=dict)
    updated_by: Optional[str] = None


# Lookbook
class LookbookMedia(BaseModel):
    url: str
    type: Literal["image", "video"] = "image"


class Comment(BaseModel):
    id: str
    user_id: str
    content: str = Field(..., min_length=1, max_length=2000)
    created_at: datetime


class Lookbookpost(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    slug: str
    content: str = Field(..., min_length=10)
    images: List[LookbookMedia] = Field(default_factory=list)
    cover_image: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    author_id: Optional[str] = None
    likes: List[str] = Field(default_factory=list)
    dislikes: List[str] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    is_published: bool = True
    published_at: datetime


# Pending PayU checkouts
class Payupaymentattempt(BaseModel):
    txnid: str
    user_id: str
    items: List[OrderItem]
    subtotal: float
    tax: float
    shipping: float
    total: float
    shipping_address: Address
    billing_address: Address
    expires_at: datetime = Field(..., description="TTL index removes the attempt after this")


# ---------------- Request payloads ----------------

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    profile: Optional[Dict[str, Any]] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class WishlistUpdate(BaseModel):
    product_ids: List[str] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    sku: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    show_original_price: Optional[bool] = None
    category: Optional[str] = Field(None, min_length=1)
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    images: Optional[List[MediaItem]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    color_images: Optional[Dict[str, List[MediaItem]]] = None
    size_chart_image: Optional[str] = None
    inventory: Optional[List[InventoryEntry]] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None
    tags: Optional[List[str]] = None


class InventoryUpdate(BaseModel):
    inventory: List[InventoryEntry]


class CategoryCreate(BaseModel):
    name: str = ""


class SubcategoryCreate(BaseModel):
    subcategory: str = ""


class CartLine(BaseModel):
    product: str = Field(..., min_length=1, description="Product id")
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    variant_label: Optional[str] = None


class PaymentChoice(BaseModel):
    method: PaymentMethod


class OrderCreate(BaseModel):
    items: List[CartLine] = Field(..., min_length=1)
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment: PaymentChoice
    notes: Optional[str] = None


class PayUInitiate(BaseModel):
    items: List[CartLine] = Field(..., min_length=1)
    shipping_address: Address
    billing_address: Optional[Address] = None


class PayUHashRequest(BaseModel):
    txnid: Optional[str] = None
    amount: Optional[str] = None
    productinfo: Optional[str] = None
    firstname: Optional[str] = None
    email: Optional[str] = None


class StatusUpdate(BaseModel):
    status: OrderStatus
    note: str = ""
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    admin_notes: Optional[str] = None


class AdminUserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "customer"
    status: Literal["active", "inactive"] = "active"
    profile: Dict[str, Any] = Field(default_factory=dict)


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[Role] = None
    status: Optional[Literal["active", "inactive"]] = None
    profile: Optional[Dict[str, Any]] = None


class LookbookCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    content: str = Field(..., min_length=10)
    images: List[LookbookMedia] = Field(default_factory=list, max_length=20)
    tags: List[str] = Field(default_factory=list)
    is_published: bool = True

    @field_validator("title", "content")
    @classmethod
    def strip_text(cls, v):
        return v.strip()


class LookbookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    content: Optional[str] = Field(None, min_length=10)
    images: Optional[List[LookbookMedia]] = Field(None, max_length=20)
    tags: Optional[List[str]] = None
    is_published: Optional[bool] = None


class ReactionRequest(BaseModel):
    type: Literal["like", "dislike"]


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)

    @field_validator("content")
    @classmethod
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Comment cannot be empty")
        return v


class ContactMessage(BaseModel):
    name: str = Field(..., min_length=2, max_length=80)
    email: EmailStr
    phone: Optional[str] = Field(None, min_length=6, max_length=30)
    subject: Optional[str] = Field(None, min_length=2, max_length=120)
    message: str = Field(..., min_length=5, max_length=5000)

    @field_validator("name", "message", "phone", "subject")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v
