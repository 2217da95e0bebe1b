# Used for validating and structuring the data my API recieves and returns


    # BaseModel for defining request/response schemas
from pydantic import BaseModel , EmailStr , Field   # EmailStr helps validate proper email structure
from typing import Optional , List , Literal , Any , Dict
from datetime import datetime

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
PaymentMethod = Literal["cod", "card", "bank_transfer", "paypal", "trc20", "arbitrum", "stripe", "whatsapp"]

# --------------------------------------------------------------------------------------------------------------------------------------------

# -----------------------------
# Auth Schemas
# -----------------------------

# Scheme for new SignUp Users
class RegisterRequest(BaseModel):

    email : EmailStr
    password : str = Field(min_length=6)
    name : str = Field(min_length=1)
    phone : Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: str = Field(alias="newPassword", min_length=6)


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[Literal["customer", "admin"]] = None
    phone: Optional[str] = None


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str


class ResendOTPRequest(BaseModel):
    email: EmailStr
    type: Literal["signup", "password_reset"] = "signup"


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    code: str
    new_password: str = Field(alias="newPassword", min_length=6)


class OAuthExchangeRequest(BaseModel):
    access_token: str = Field(min_length=1)


# Scheme for returning User Info (password hash is never exposed)
class UserRead(BaseModel):

    id : int
    email : str
    name : str
    phone: Optional[str] = None
    role : str
    is_verified : bool
    auth_provider : Optional[str] = None
    created_at : datetime
    updated_at : datetime

    class Config:
        from_attributes = True    # Allows returning SQLModel objects directlty

# --------------------------------------------------------------------------------------------------------------------------------------------

# Category Schemas

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    name_ps: Optional[str] = None
    name_fa: Optional[str] = None
    name_de: Optional[str] = None
    name_fr: Optional[str] = None
    icon: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: Optional[bool] = None


class CategoryUpdate(CategoryCreate):
    name: Optional[str] = Field(default=None, min_length=1)

# --------------------------------------------------------------------------------------------------------------------------------------------

# Product Schemas

class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    name_ps: Optional[str] = None
    name_fa: Optional[str] = None
    name_de: Optional[str] = None
    name_fr: Optional[str] = None
    description: Optional[str] = None
    description_ps: Optional[str] = None
    description_fa: Optional[str] = None
    description_de: Optional[str] = None
    description_fr: Optional[str] = None
    price: float = Field(ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    stock: int = Field(default=0, ge=0)
    category_id: int = Field(ge=1)
    image: Optional[str] = None
    images: Optional[List[str]] = None
    unit: str = "piece"
    weight: Optional[float] = Field(default=None, ge=0)
    is_featured: bool = False
    is_active: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    name_ps: Optional[str] = None
    name_fa: Optional[str] = None
    name_de: Optional[str] = None
    name_fr: Optional[str] = None
    description: Optional[str] = None
    description_ps: Optional[str] = None
    description_fa: Optional[str] = None
    description_de: Optional[str] = None
    description_fr: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = Field(default=None, ge=1)
    image: Optional[str] = None
    images: Optional[List[str]] = None
    unit: Optional[str] = None
    weight: Optional[float] = Field(default=None, ge=0)
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None

# --------------------------------------------------------------------------------------------------------------------------------------------

# Address Schemas

class AddressCreate(BaseModel):
    recipient_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    province: str = Field(min_length=1)
    city: str = Field(min_length=1)
    district: Optional[str] = None
    street: str = Field(min_length=1)
    postal_code: Optional[str] = None
    is_default: Optional[bool] = None


# Partial update, only the fields sent are changed
class AddressUpdate(BaseModel):
    recipient_name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, min_length=1)
    province: Optional[str] = Field(default=None, min_length=1)
    city: Optional[str] = Field(default=None, min_length=1)
    district: Optional[str] = None
    street: Optional[str] = Field(default=None, min_length=1)
    postal_code: Optional[str] = None
    is_default: Optional[bool] = None

# --------------------------------------------------------------------------------------------------------------------------------------------

# Cart Schemas

class CartItemCreate(BaseModel):
    product_id : int
    quantity: int = Field(default=1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int

# --------------------------------------------------------------------------------------------------------------------------------------------

# Order Schemas

class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)
    # Client-side price is accepted for compatibility, the catalog price is what gets charged
    price: Optional[float] = Field(default=None, ge=0)


# Schema for creating a new order (checkout)
class OrderCreate(BaseModel):
    # User ID will come from logged-in user
    address_id: Optional[int] = None
    address: Optional[AddressCreate] = None
    payment_method: PaymentMethod
    items: List[OrderItemCreate] = Field(min_length=1)
    subtotal: Optional[float] = Field(default=None, ge=0)
    shipping_fee: Optional[float] = Field(default=None, ge=0)
    tax: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    notes: Optional[str] = None
    recaptcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


# Schema for reading a single order item
class OrderItemRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_image: Optional[str] = None
    quantity: int
    price: float
    subtotal: float

    class Config:
        from_attributes = True


# Schema for reading a complete order record
class OrderRead(BaseModel):
    id: int
    order_number: str
    user_id: int
    address_id: Optional[int] = None
    status: str
    payment_method: str
    payment_status: str
    payment_reference: Optional[str] = None
    subtotal: float
    shipping_fee: float
    tax: float
    discount: float
    total: float
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    # Not a column, populated from OrderItem rows by the endpoint
    items: List[OrderItemRead] = []

    class Config:
        from_attributes = True

# --------------------------------------------------------------------------------------------------------------------------------------------

# Review & Wishlist Schemas

class ReviewCreate(BaseModel):
    product_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    order_id: Optional[int] = None


class WishlistAdd(BaseModel):
    product_id: int

# --------------------------------------------------------------------------------------------------------------------------------------------

# Storefront Content Schemas

class TestimonialCreate(BaseModel):
    user_name: str = Field(min_length=1)
    location: Optional[str] = None
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=1)
    avatar: Optional[str] = None
    gender: Optional[Literal["male", "female"]] = None
    is_active: bool = True


class TestimonialUpdate(BaseModel):
    user_name: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = Field(default=None, min_length=1)
    avatar: Optional[str] = None
    gender: Optional[Literal["male", "female"]] = None
    is_active: Optional[bool] = None


class NewsItemCreate(BaseModel):
    title: str = Field(min_length=1)
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


class NewsItemUpdate(NewsItemCreate):
    title: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None
    display_order: Optional[int] = None


class SettingUpdate(BaseModel):
    value: Any = None


class ContactRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: str = Field(min_length=1)

# --------------------------------------------------------------------------------------------------------------------------------------------

# Payment Schemas

class PayPalCreateRequest(BaseModel):
    amount: float = Field(gt=0)
    currency: str = "USD"


class PayPalCaptureRequest(BaseModel):
    order_id: str = Field(alias="orderId", min_length=1)
    local_order_id: Optional[int] = Field(default=None, alias="localOrderId")


class StripeIntentRequest(BaseModel):
    amount: int    # smallest currency unit (cents)
    currency: str = "usd"
    order_id: Optional[str] = Field(default=None, alias="orderId")
    description: Optional[str] = None


class StripeLinkItem(BaseModel):
    name: str
    amount: float    # smallest currency unit, already converted by the client
    quantity: int = Field(ge=1)
    image: Optional[str] = None


class StripeLinkRequest(BaseModel):
    items: List[StripeLinkItem]
    currency: str = "usd"
    description: Optional[str] = None


class StripeConfirmRequest(BaseModel):
    payment_intent_id: str = Field(alias="paymentIntentId", min_length=1)
    order_id: Optional[str] = Field(default=None, alias="orderId")


class WhatsAppItem(BaseModel):
    name: Optional[str] = None
    product_name: Optional[str] = None
    quantity: int = 1
    price: Optional[Any] = None
    weight: Optional[Any] = None
    size: Optional[Any] = None


class WhatsAppLinkRequest(BaseModel):
    order_id: Any = Field(alias="orderId")
    total: Any
    items: List[WhatsAppItem] = []
    options: Dict[str, Any] = {}


class CryptoVerifyRequest(BaseModel):
    type: str
    tx_hash: str = Field(alias="txHash")
    amount: Optional[float] = None
    order_id: Optional[int] = Field(default=None, alias="orderId")

# --------------------------------------------------------------------------------------------------------------------------------------------
