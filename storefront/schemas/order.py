from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from ..models.order import OrderStatus


class Address(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class CheckoutRequest(BaseModel):
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: Optional[Literal["credit_card", "debit_card", "paypal", "bank_transfer"]] = None
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemResponse(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price: float
    total_price: float

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    status: OrderStatus

    total_amount: float
    total_items: int

    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    page: int
    per_page: int
    total_pages: int
