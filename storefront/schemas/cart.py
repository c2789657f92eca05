from pydantic import BaseModel
from typing import List, Optional
from .cart_item import CartItemRead


class CartSummary(BaseModel):
    id: Optional[str] = None
    items: List[CartItemRead] = []
    total_items: int = 0
    total_price: float = 0.0
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class CartUpdateResult(BaseModel):
    message: str
    cart: CartSummary
    cart_item: Optional[CartItemRead] = None


class MergeResult(BaseModel):
    merged: bool
    message: str
    items_merged: int = 0
    cart: Optional[CartSummary] = None
