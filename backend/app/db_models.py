# Database Models

# Here, we define all the database tables, attributes to each

from sqlmodel import SQLModel , Field
from sqlalchemy import Column, JSON
from typing import Optional, List, Any   # Optional allows fields to be NULL
from datetime import datetime # Default timestamps


# --------------------------------------------------------------------------------------------------------------------
# User Table Definition
# --------------------------------------------------------------------------------------------------------------------

class User(SQLModel , table=True):

    __tablename__ = "users"

    # User ID -- Primary key as a unique identifier (Auto-generated)
    id: Optional[int] = Field(default=None , primary_key=True)

    email: str = Field(unique=True, index=True)
    hashed_password: str  # bcrypt hash, never returned by the API
    name: str
    phone: Optional[str] = None

    role: str = Field(default="customer")    # "customer" or "admin"
    is_verified: bool = False
    auth_provider: Optional[str] = None      # "google" for social accounts

    created_at: datetime = Field(default_factory=datetime.utcnow , nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow , nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Category Table Definition
# --------------------------------------------------------------------------------------------------------------------

class Category(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str = Field(index=True)
    name_ps: Optional[str] = None
    name_fa: Optional[str] = None
    name_de: Optional[str] = None
    name_fr: Optional[str] = None

    icon: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[int] = Field(default=None, foreign_key="category.id")
    is_active: bool = True

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Product Table Definition
# --------------------------------------------------------------------------------------------------------------------

class Product(SQLModel , table=True):

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str
    name_ps: Optional[str] = None
    name_fa: Optional[str] = None
    name_de: Optional[str] = None
    name_fr: Optional[str] = None

    description: Optional[str] = None
    description_ps: Optional[str] = None
    description_fa: Optional[str] = None
    description_de: Optional[str] = None
    description_fr: Optional[str] = None

    price: float
    original_price: Optional[float] = None    # Shown struck-through when on sale
    stock: int = 0

    category_id: int = Field(foreign_key="category.id")

    image: Optional[str] = None
    images: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    unit: str = "piece"
    weight: Optional[float] = None

    is_featured: bool = False
    is_active: bool = True

    # Kept in sync with approved reviews
    rating: float = 0
    review_count: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Address Book Table Definition
# --------------------------------------------------------------------------------------------------------------------

class Address(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    recipient_name: str
    phone: str
    province: str
    city: str
    district: Optional[str] = None
    street: str
    postal_code: Optional[str] = None

    is_default: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Order Table Definition
# --------------------------------------------------------------------------------------------------------------------

# Keeps a record of all orders that went through
class Order(SQLModel , table=True):

    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(unique=True, index=True)

    user_id: int = Field(foreign_key="users.id", index=True)
    address_id: Optional[int] = Field(default=None, foreign_key="address.id")

    status: str = Field(default="pending")
    payment_method: str
    payment_status: str = Field(default="pending")
    payment_reference: Optional[str] = None   # PayPal order id, Stripe intent id or crypto tx hash

    subtotal: float
    shipping_fee: float = 0
    tax: float = 0
    discount: float = 0
    total: float

    notes: Optional[str] = None
    tracking_number: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Order Item Table Definition
# --------------------------------------------------------------------------------------------------------------------

class OrderItem(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: int = Field(foreign_key="product.id")

    # Snapshot of the product at the time of purchase, in case the Product changes later
    product_name: str
    product_image: Optional[str] = None
    quantity: int
    price: float
    subtotal: float

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Review Table Definition
# --------------------------------------------------------------------------------------------------------------------

class Review(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    user_id: int = Field(foreign_key="users.id")
    order_id: Optional[int] = Field(default=None, foreign_key="orders.id")

    rating: int # 1-5 stars
    comment: Optional[str] = None

    is_verified: bool = False
    is_approved: bool = True

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Wishlist & Cart Table Definitions
# --------------------------------------------------------------------------------------------------------------------

class WishlistItem(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    product_id: int = Field(foreign_key="product.id")

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class CartItem(SQLModel , table = True):

    id: Optional[int] = Field(default=None , primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    product_id: int = Field(foreign_key="product.id")
    quantity: int

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# Storefront Content Table Definitions
# --------------------------------------------------------------------------------------------------------------------

class Testimonial(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)

    user_name: str
    location: Optional[str] = None
    rating: int
    comment: str
    avatar: Optional[str] = None
    gender: Optional[str] = None    # "male" or "female", picks the default avatar
    is_active: bool = True

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class NewsItem(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)

    title: str
    title_ps: Optional[str] = None
    title_fa: Optional[str] = None
    title_de: Optional[str] = None
    title_fr: Optional[str] = None

    subtitle: Optional[str] = None
    subtitle_ps: Optional[str] = None
    subtitle_fa: Optional[str] = None
    subtitle_de: Optional[str] = None
    subtitle_fr: Optional[str] = None

    description: Optional[str] = None
    description_ps: Optional[str] = None
    description_fa: Optional[str] = None
    description_de: Optional[str] = None
    description_fr: Optional[str] = None

    tag: Optional[str] = None
    image: Optional[str] = None
    bg_class: Optional[str] = None
    is_active: bool = True
    display_order: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class SiteSetting(SQLModel, table=True):

    key: str = Field(primary_key=True)
    value: Any = Field(default=None, sa_column=Column(JSON))

    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# --------------------------------------------------------------------------------------------------------------------
# One-Time Passwords (signup verification / password reset)
# --------------------------------------------------------------------------------------------------------------------

class OTPCode(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    code: str
    purpose: str = Field(default="signup")   # "signup" or "password_reset"
    attempts: int = 0
    expires_at: datetime

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
