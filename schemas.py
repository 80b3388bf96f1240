"""
Database Schemas for the Little Treasures store

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson.objectid import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

OTPPurpose = Literal["registration", "login", "password_reset"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]
Gender = Literal["male", "female", "other"]
AddressType = Literal["home", "work", "other"]

ORDER_FLOW = ["pending", "confirmed", "processing", "shipped", "delivered"]
TERMINAL_STATUSES = {"delivered", "cancelled"}

DEFAULT_ADMIN_PERMISSIONS = ["products", "orders", "users", "dashboard", "analytics"]


class Address(BaseModel):
    type: AddressType = "home"
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: str = "India"
    is_default: bool = False


class User(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    gender: Optional[Gender] = None
    role: Literal["customer"] = "customer"
    is_active: bool = False
    email_verified: bool = False
    avatar: Optional[str] = None
    orders: List[ObjectId] = []
    wishlist: List[ObjectId] = []
    addresses: List[Address] = []
    last_login: Optional[datetime] = None
    login_attempts: int = 0
    lock_until: Optional[datetime] = None


class Admin(BaseModel):
    username: str
    email: EmailStr
    password_hash: str
    role: Literal["admin"] = "admin"
    permissions: List[str] = Field(default_factory=lambda: list(DEFAULT_ADMIN_PERMISSIONS))
    avatar: Optional[str] = None
    is_active: bool = True
    email_verified: bool = False
    last_login: Optional[datetime] = None
    login_attempts: int = 0
    lock_until: Optional[datetime] = None


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    category: str = Field(..., min_length=1)
    stock: int = Field(0, ge=0)
    description: Optional[str] = None
    images: List[str] = []
    main_image: Optional[str] = None
    featured: bool = False
    tags: List[str] = []
    sku: Optional[str] = None


class OrderItem(BaseModel):
    """Line item snapshot; never re-read from the live product."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None


class CustomerInfo(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)


class Order(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    order_number: str
    user_id: Optional[ObjectId] = None
    customer_name: str
    customer_email: EmailStr
    customer_phone: str
    customer_address: str
    items: List[OrderItem]
    total_amount: float
    payment_method: str = "cod"
    payment_status: PaymentStatus = "pending"
    status: OrderStatus = "pending"
    notes: str = ""
    tracking_number: Optional[str] = None


class OTP(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)
    type: OTPPurpose
    verified: bool = False
    expires_at: datetime
