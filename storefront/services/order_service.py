import logging
from typing import List, Optional

from ..exceptions import EmptyCart, Forbidden, OrderNotFound
from ..models.order import Order, OrderStatus
from ..repositories.base import CartRepository, OrderRepository
from ..schemas.order import CheckoutRequest
from .auth import Identity
from .kafka_client import KafkaClient, kafka_client

logger = logging.getLogger(__name__)


class OrderService:
    """Сервис оформления и просмотра заказов"""

    def __init__(self, orders: OrderRepository, carts: CartRepository, events: Optional[KafkaClient] = None):
        self.orders = orders
        self.carts = carts
        self.events = events or kafka_client

    async def checkout(self, identity: Identity, request: CheckoutRequest) -> Order:
        """
        Оформление заказа из корзины.
        Остатки списываются здесь, а не при добавлении в корзину.
        """
        identity.owner_key()
        cart = self.carts.get_by_owner(identity)
        if cart is None or not cart.items:
            raise EmptyCart()

        cart_id = cart.id
        details = request.model_dump(mode="json")
        order = self.orders.place_from_cart(cart, details)

        logger.info(f"✅ Order {order.id} created from cart {cart_id} ({order.total_items} items)")
        await self._publish_order_created(order, cart_id)
        return order

    def get_order(self, identity: Identity, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound()
        if not identity.is_admin and not self._is_owner(identity, order):
            # Чужой заказ не раскрываем
            raise OrderNotFound()
        return order

    @staticmethod
    def _is_owner(identity: Identity, order: Order) -> bool:
        if identity.user_id:
            return order.user_id == identity.user_id
        return identity.session_id is not None and order.session_id == identity.session_id

    def list_orders(
            self,
            identity: Identity,
            skip: int = 0,
            limit: int = 10,
            status: Optional[OrderStatus] = None,
            all_users: bool = False
    ) -> tuple[List[Order], int]:
        """Заказы пользователя, либо все заказы для администратора"""
        if all_users and not identity.is_admin:
            raise Forbidden()
        user_id = None if all_users else identity.user_id
        orders = self.orders.list(skip=skip, limit=limit, user_id=user_id, status=status)
        total = self.orders.count(user_id=user_id, status=status)
        return orders, total

    def update_status(self, order_id: str, status: OrderStatus) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound()
        order = self.orders.set_status(order, status)
        logger.info(f"✅ Order {order_id} status updated to {status.value}")
        return order

    async def _publish_order_created(self, order: Order, cart_id: str):
        """Публикует событие создания заказа"""
        try:
            payload = {
                "order_id": order.id,
                "cart_id": cart_id,
                "user_id": order.user_id,
                "session_id": order.session_id,
                "total_amount": float(order.total_amount),
                "total_items": order.total_items,
                "status": order.status.value,
                "items": [
                    {
                        "product_id": item.product_id,
                        "product_name": item.product_name,
                        "quantity": item.quantity,
                        "unit_price": float(item.unit_price),
                        "total_price": float(item.total_price)
                    } for item in order.items
                ],
                "created_at": order.created_at.isoformat()
            }

            await self.events.publish_event(
                topic="order.created",
                event_type="order_created",
                payload=payload,
                key=order.id
            )
        except Exception as e:
            logger.error(f"❌ Failed to publish order_created event: {e}")
