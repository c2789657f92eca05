from .cart import CartSummary, CartUpdateResult, MergeResult
from .cart_item import CartItemCreate, CartItemRead, CartItemUpdate
from .product import ProductBrief, ProductCreate, ProductResponse, ProductUpdate

__all__ = [
    "CartSummary", "CartUpdateResult", "MergeResult",
    "CartItemCreate", "CartItemRead", "CartItemUpdate",
    "ProductBrief", "ProductCreate", "ProductResponse", "ProductUpdate",
]
