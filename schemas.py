"""
Database Schemas

MongoDB collection schemas for the tailoring storefront, defined with
Pydantic models. These schemas are used for data validation in the API
and the order layer.

Each stored model represents a collection in the database. The model
name is converted to lowercase for the collection name:
- User -> "user" collection
- OrderItem -> "orderitem" collection
- CustomOrder -> "customorder" collection

Request payloads (checkout, status updates, measurements) live at the
bottom of the module.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal, Dict, Any
from datetime import datetime

OrderStatus = Literal["PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"]
PaymentStatus = Literal["PENDING", "COMPLETED", "FAILED", "REFUNDED"]
GarmentType = Literal["blouse", "salwar-kameez", "lehenga"]


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    phone: Optional[str] = Field(None, description="Phone number")
    is_active: bool = Field(True, description="Whether user is active")
    role: Literal["user", "admin"] = Field("user", description="User role")


class Category(BaseModel):
    name: str
    description: Optional[str] = None
    is_active: bool = True


class Product(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    final_price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None
    category_id: str
    images: List[str] = []
    is_active: bool = True
    is_featured: bool = False


class Address(BaseModel):
    user_id: str
    type: str = "Order Address"
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: str
    city: str
    state: str
    zip_code: str
    country: str = "India"
    is_default: bool = False


class Order(BaseModel):
    order_number: str
    user_id: str
    status: OrderStatus = "PENDING"
    subtotal: float = Field(..., ge=0)
    discount: float = 0
    tax: float = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    total: float
    payment_method: str
    payment_status: PaymentStatus = "PENDING"
    address_id: Optional[str] = None
    notes: str = ""


class OrderItem(BaseModel):
    order_id: str
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    size: Optional[str] = None
    color: Optional[str] = None


class CustomOrder(BaseModel):
    user_id: str
    order_id: str = Field(..., description="Order the custom design was purchased with")
    order_item_id: str = Field(..., description="Line item carrying the virtual product")
    garment_type: GarmentType = "blouse"
    fabric: str = "Custom Fabric"
    fabric_color: str = "#000000"
    front_design: str = "Custom Front Design"
    back_design: str = "Custom Back Design"
    old_measurements: str = Field("{}", description="JSON-encoded free-form measurements")
    price: float = Field(..., ge=0)
    notes: str = ""
    appointment_date: Optional[datetime] = None
    appointment_type: Optional[str] = None
    status: OrderStatus = "PENDING"


class Measurement(BaseModel):
    user_id: str
    garment_type: GarmentType = "blouse"
    custom_order_id: Optional[str] = None
    values: Dict[str, float] = Field(default_factory=dict, description="Measurement name -> inches")
    notes: Optional[str] = None


class CartItem(BaseModel):
    user_id: str
    product_id: str
    qty: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


# Request payloads

class FabricChoice(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class CustomDesign(BaseModel):
    fabric: Optional[FabricChoice] = None
    front_design: Optional[str] = None
    back_design: Optional[str] = None
    measurements: Dict[str, Any] = Field(default_factory=dict)
    own_fabric_details: Optional[str] = None
    appointment_date: Optional[datetime] = None
    appointment_type: Optional[str] = None


class CheckoutItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    final_price: float = Field(..., ge=0)
    size: Optional[str] = None
    color: Optional[str] = None
    custom_design: Optional[CustomDesign] = None


class ShippingInfo(BaseModel):
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: str
    city: str
    state: str
    zip_code: str
    country: Optional[str] = None


class PaymentInfo(BaseModel):
    method: str
    notes: Optional[str] = None


class CheckoutIn(BaseModel):
    user_id: str
    items: List[CheckoutItem] = Field(..., min_length=1)
    shipping_info: ShippingInfo
    payment_info: PaymentInfo
    address_id: Optional[str] = None
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    total: float
    order_number_prefix: Optional[str] = None


class StatusUpdate(BaseModel):
    status: OrderStatus


class MeasurementUpdate(BaseModel):
    garment_type: Optional[GarmentType] = None
    custom_order_id: Optional[str] = None
    values: Optional[Dict[str, float]] = None
    notes: Optional[str] = None
