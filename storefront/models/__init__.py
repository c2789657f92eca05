from .product import Product
from .cart import Cart
from .cart_item import CartItem
from .order import Order, OrderItem, OrderStatus

__all__ = ["Product", "Cart", "CartItem", "Order", "OrderItem", "OrderStatus"]
