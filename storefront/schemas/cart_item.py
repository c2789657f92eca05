from pydantic import BaseModel

from .product import ProductBrief


class CartItemCreate(BaseModel):
    product_id: str
    quantity: int = 1


class CartItemUpdate(BaseModel):
    quantity: int


class CartItemRead(BaseModel):
    id: str
    product: ProductBrief
    quantity: int
    price_at_time: float
    subtotal: float

    class Config:
        from_attributes = True
