from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.cart import Cart
from ..models.cart_item import CartItem
from ..models.order import Order, OrderStatus
from ..models.product import Product
from ..services.auth import Identity


class ProductLookup(ABC):
    """Поиск товара для операций с корзиной"""

    @abstractmethod
    def get_active(self, product_id: str) -> Optional[Product]:
        """Активный товар по ID или None"""


class ProductRepository(ProductLookup):
    """Управление каталогом"""

    @abstractmethod
    def get(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    def list(
            self,
            skip: int,
            limit: int,
            filters: Dict[str, Any],
            sort: str,
            order: str
    ) -> List[Product]:
        ...

    @abstractmethod
    def count(self, filters: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    def categories(self) -> List[str]:
        ...

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Product:
        ...

    @abstractmethod
    def update(self, product: Product, data: Dict[str, Any]) -> Product:
        ...

    @abstractmethod
    def deactivate(self, product: Product) -> Product:
        ...


class CartRepository(ABC):
    """
    Хранилище корзин. Каждая мутация выполняется одной транзакцией
    и обновляет updated_at корзины.
    """

    @abstractmethod
    def get_by_owner(self, identity: Identity) -> Optional[Cart]:
        ...

    @abstractmethod
    def create_for_owner(self, identity: Identity) -> Cart:
        """Атомарный find-or-create по ключу владельца"""

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[CartItem]:
        ...

    @abstractmethod
    def add_or_increment(self, cart: Cart, product: Product, quantity: int) -> CartItem:
        """
        Добавляет позицию с ценой товара на текущий момент,
        либо атомарно увеличивает количество уже существующей позиции.
        """

    @abstractmethod
    def set_quantity(self, item: CartItem, quantity: int) -> CartItem:
        ...

    @abstractmethod
    def delete_item(self, item: CartItem) -> None:
        ...

    @abstractmethod
    def clear(self, cart: Cart) -> int:
        """Удаляет все позиции, возвращает их количество"""

    @abstractmethod
    def merge(self, guest_cart: Cart, user_cart: Cart) -> int:
        """
        Переносит позиции гостевой корзины в корзину пользователя и удаляет
        гостевую корзину. Всё или ничего. Возвращает число перенесённых позиций.
        """

    @abstractmethod
    def delete_guest_carts_idle_since(self, cutoff: datetime) -> int:
        ...


class OrderRepository(ABC):

    @abstractmethod
    def place_from_cart(self, cart: Cart, details: Dict[str, Any]) -> Order:
        """
        Создает заказ по позициям корзины: списывает остатки, фиксирует цены
        позиций и очищает корзину. Одна транзакция.
        """

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def list(self, skip: int, limit: int, user_id: Optional[str] = None,
             status: Optional[OrderStatus] = None) -> List[Order]:
        ...

    @abstractmethod
    def count(self, user_id: Optional[str] = None, status: Optional[OrderStatus] = None) -> int:
        ...

    @abstractmethod
    def set_status(self, order: Order, status: OrderStatus) -> Order:
        ...
