import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from ..config import settings
from ..database import utcnow
from ..exceptions import (
    CartItemNotFound,
    InsufficientStock,
    InvalidIdentity,
    InvalidQuantity,
    ProductNotFound,
    Unauthorized,
)
from ..models.cart import Cart
from ..models.cart_item import CartItem
from ..repositories.base import CartRepository, ProductLookup
from ..schemas.cart import CartSummary, CartUpdateResult, MergeResult
from ..schemas.cart_item import CartItemRead
from ..schemas.product import ProductBrief
from .auth import Identity
from .kafka_client import KafkaClient, kafka_client

logger = logging.getLogger(__name__)


def compute_totals(items: Iterable[CartItem]) -> Tuple[int, Decimal]:
    """Количество единиц и сумма по ценам на момент добавления"""
    total_items = 0
    total_price = Decimal("0")
    for item in items:
        total_items += item.quantity
        total_price += Decimal(item.price_at_time) * item.quantity
    return total_items, total_price


def _validate_quantity(quantity) -> int:
    # bool - подкласс int, его не принимаем
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity()
    return quantity


def to_item_read(item: CartItem) -> CartItemRead:
    price = Decimal(item.price_at_time)
    return CartItemRead(
        id=item.id,
        product=ProductBrief.model_validate(item.product),
        quantity=item.quantity,
        price_at_time=float(price),
        subtotal=float(price * item.quantity)
    )


def to_summary(cart: Cart) -> CartSummary:
    total_items, total_price = compute_totals(cart.items)
    return CartSummary(
        id=cart.id,
        items=[to_item_read(item) for item in cart.items],
        total_items=total_items,
        total_price=float(total_price),
        user_id=cart.user_id,
        session_id=cart.session_id
    )


class CartService:
    def __init__(
            self,
            carts: CartRepository,
            products: ProductLookup,
            events: Optional[KafkaClient] = None,
            guest_cart_ttl_days: Optional[int] = None
    ):
        self.carts = carts
        self.products = products
        self.events = events or kafka_client
        self.guest_cart_ttl = timedelta(
            days=settings.guest_cart_ttl_days if guest_cart_ttl_days is None else guest_cart_ttl_days
        )

    def resolve_cart(self, identity: Identity) -> Cart:
        """Получить или создать корзину владельца"""
        identity.owner_key()
        cart = self.carts.get_by_owner(identity)
        if cart is None:
            cart = self.carts.create_for_owner(identity)
        return cart

    def get_cart(self, identity: Identity) -> CartSummary:
        """Получить корзину с подсчётом итогов"""
        return to_summary(self.resolve_cart(identity))

    def find_cart(self, identity: Identity) -> Optional[CartSummary]:
        """Существующая корзина владельца, без создания"""
        identity.owner_key()
        cart = self.carts.get_by_owner(identity)
        return to_summary(cart) if cart is not None else None

    async def add_item(self, identity: Identity, product_id: str, quantity: int = 1) -> CartUpdateResult:
        """Добавить товар в корзину"""
        identity.owner_key()
        _validate_quantity(quantity)

        product = self.products.get_active(product_id)
        if product is None:
            raise ProductNotFound()

        # Сверяем с общим остатком товара, без резервирования
        if product.stock < quantity:
            raise InsufficientStock()

        cart = self.resolve_cart(identity)
        existed = any(line.product_id == product_id for line in cart.items)

        item = self.carts.add_or_increment(cart, product, quantity)
        summary = self.get_cart(identity)
        item_read = to_item_read(item)

        logger.info(
            f"🛍️ {'Updated' if existed else 'Added'} product {product_id} "
            f"(+{quantity}) in cart {summary.id}"
        )
        await self._publish(
            topic="cart.item.added",
            event_type="item_added_to_cart",
            summary=summary,
            payload={
                "item": item_read.model_dump(exclude={"product"}),
                "product_id": product_id,
                "added_quantity": quantity,
                "action": "updated" if existed else "added"
            }
        )

        return CartUpdateResult(
            message="Cart item updated" if existed else "Item added to cart",
            cart=summary,
            cart_item=item_read
        )

    def _owned_item(self, identity: Identity, item_id: str) -> CartItem:
        identity.owner_key()
        item = self.carts.get_item(item_id)
        if item is None:
            raise CartItemNotFound()
        if not identity.owns(item.cart):
            logger.warning(f"Identity {identity.owner_key()} tried to modify item {item_id} of cart {item.cart_id}")
            raise Unauthorized()
        return item

    async def update_item(self, identity: Identity, item_id: str, quantity: int) -> CartUpdateResult:
        """Обновить количество товара в корзине"""
        _validate_quantity(quantity)
        item = self._owned_item(identity, item_id)

        if item.product.stock < quantity:
            raise InsufficientStock()

        old_quantity = item.quantity
        item = self.carts.set_quantity(item, quantity)
        summary = self.get_cart(identity)
        item_read = to_item_read(item)

        await self._publish(
            topic="cart.item.updated",
            event_type="item_updated_in_cart",
            summary=summary,
            payload={
                "item": item_read.model_dump(exclude={"product"}),
                "change": {"from": old_quantity, "to": quantity, "difference": quantity - old_quantity}
            }
        )

        return CartUpdateResult(message="Cart item updated", cart=summary, cart_item=item_read)

    async def remove_item(self, identity: Identity, item_id: str) -> CartUpdateResult:
        """Удалить позицию из корзины"""
        item = self._owned_item(identity, item_id)
        product_id = item.product_id

        self.carts.delete_item(item)
        summary = self.get_cart(identity)

        await self._publish(
            topic="cart.item.removed",
            event_type="item_removed_from_cart",
            summary=summary,
            payload={"item_id": item_id, "product_id": product_id, "action": "removed"}
        )

        return CartUpdateResult(message="Item removed from cart", cart=summary)

    async def clear_cart(self, identity: Identity) -> CartUpdateResult:
        """Очистить корзину. Сама корзина остаётся"""
        cart = self.resolve_cart(identity)
        removed = self.carts.clear(cart)
        summary = self.get_cart(identity)

        logger.info(f"🧹 Cart {summary.id} cleared: {removed} items removed")
        await self._publish(
            topic="cart.cleared",
            event_type="cart_cleared",
            summary=summary,
            payload={"items_removed": removed, "action": "cleared"}
        )

        return CartUpdateResult(message="Cart cleared", cart=summary)

    async def merge_guest_cart(self, user_id: Optional[str], session_id: Optional[str]) -> MergeResult:
        """Перенести гостевую корзину в корзину пользователя при входе"""
        if not user_id:
            raise InvalidIdentity("Merging requires an authenticated user")

        if not session_id:
            return MergeResult(merged=False, message="No guest cart to merge")

        guest_cart = self.carts.get_by_owner(Identity.guest(session_id))
        if guest_cart is None or not guest_cart.items:
            return MergeResult(merged=False, message="Guest cart is empty")

        user_identity = Identity.user(user_id)
        user_cart = self.resolve_cart(user_identity)
        guest_cart_id = guest_cart.id

        moved = self.carts.merge(guest_cart, user_cart)
        summary = self.get_cart(user_identity)

        logger.info(f"🔀 Merged {moved} items from guest cart {guest_cart_id} into cart {summary.id}")
        await self._publish(
            topic="cart.merged",
            event_type="guest_cart_merged",
            summary=summary,
            payload={"guest_cart_id": guest_cart_id, "session_id": session_id, "items_merged": moved}
        )

        return MergeResult(merged=True, message="Cart merged successfully", items_merged=moved, cart=summary)

    def purge_expired_guest_carts(self, now: Optional[datetime] = None) -> int:
        """Удалить гостевые корзины без активности дольше guest_cart_ttl"""
        cutoff = (now or utcnow()) - self.guest_cart_ttl
        removed = self.carts.delete_guest_carts_idle_since(cutoff)
        if removed:
            logger.info(f"🧹 Purged {removed} guest carts idle since {cutoff.isoformat()}")
        return removed

    async def _publish(self, topic: str, event_type: str, summary: CartSummary, payload: dict):
        """Событие корзины с итогами. Ошибки только логируются"""
        try:
            await self.events.publish_event(
                topic=topic,
                event_type=event_type,
                payload={
                    "cart_id": summary.id,
                    "user_id": summary.user_id,
                    "session_id": summary.session_id,
                    "total_items": summary.total_items,
                    "total_price": summary.total_price,
                    **payload
                },
                key=summary.id
            )
        except Exception as e:
            logger.error(f"❌ Failed to publish {event_type} event: {e}")
