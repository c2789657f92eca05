import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..database import utcnow
from ..exceptions import InsufficientStock, ProductNotFound
from ..models.cart import Cart
from ..models.cart_item import CartItem
from ..models.order import Order, OrderItem, OrderStatus
from ..models.product import Product
from ..services.auth import Identity
from .base import CartRepository, OrderRepository, ProductRepository

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "name": Product.name,
    "price": Product.price,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
}


class SqlProductRepository(ProductRepository):

    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: str) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def get_active(self, product_id: str) -> Optional[Product]:
        return self.db.execute(
            select(Product).where(Product.id == product_id, Product.active.is_(True))
        ).scalar_one_or_none()

    def _apply_filters(self, query, filters: Dict[str, Any]):
        query = query.where(Product.active.is_(True))

        if filters.get("category"):
            query = query.where(Product.category == filters["category"])
        if filters.get("min_price") is not None:
            query = query.where(Product.price >= filters["min_price"])
        if filters.get("max_price") is not None:
            query = query.where(Product.price <= filters["max_price"])
        if filters.get("featured"):
            query = query.where(Product.featured.is_(True))
        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            query = query.where(or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.category.ilike(pattern),
            ))
        return query

    def list(self, skip: int, limit: int, filters: Dict[str, Any], sort: str, order: str) -> List[Product]:
        column = SORTABLE_FIELDS.get(sort, Product.created_at)
        ordering = column.asc() if order == "asc" else column.desc()

        query = self._apply_filters(select(Product), filters)
        query = query.order_by(ordering, Product.id).offset(skip).limit(limit)
        return list(self.db.execute(query).scalars().all())

    def count(self, filters: Dict[str, Any]) -> int:
        query = self._apply_filters(select(func.count(Product.id)), filters)
        return self.db.execute(query).scalar() or 0

    def categories(self) -> List[str]:
        query = (
            select(Product.category)
            .where(Product.active.is_(True))
            .distinct()
            .order_by(Product.category)
        )
        return list(self.db.execute(query).scalars().all())

    def create(self, data: Dict[str, Any]) -> Product:
        product = Product(**data)
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product

    def update(self, product: Product, data: Dict[str, Any]) -> Product:
        for field, value in data.items():
            setattr(product, field, value)
        self.db.commit()
        self.db.refresh(product)
        return product

    def deactivate(self, product: Product) -> Product:
        product.active = False
        self.db.commit()
        self.db.refresh(product)
        return product


class SqlCartRepository(CartRepository):

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _owner_filter(identity: Identity):
        kind, value = identity.owner_key()
        if kind == "user":
            return Cart.user_id == value
        return Cart.session_id == value

    def get_by_owner(self, identity: Identity) -> Optional[Cart]:
        query = (
            select(Cart)
            .options(selectinload(Cart.items))
            .where(self._owner_filter(identity))
        )
        return self.db.execute(query).scalar_one_or_none()

    def create_for_owner(self, identity: Identity) -> Cart:
        kind, value = identity.owner_key()
        cart = Cart(user_id=value) if kind == "user" else Cart(session_id=value)
        self.db.add(cart)
        try:
            self.db.commit()
        except IntegrityError:
            # Параллельный запрос уже создал корзину для этого владельца
            self.db.rollback()
            existing = self.get_by_owner(identity)
            if existing is None:
                raise
            logger.info(f"Cart for {kind} {value} was created concurrently, reusing {existing.id}")
            return existing

        self.db.refresh(cart)
        logger.info(f"🛒 Created cart {cart.id} for {kind} {value}")
        return cart

    def get_item(self, item_id: str) -> Optional[CartItem]:
        query = (
            select(CartItem)
            .options(selectinload(CartItem.cart))
            .where(CartItem.id == item_id)
        )
        return self.db.execute(query).scalar_one_or_none()

    def _find_line(self, cart_id: str, product_id: str) -> Optional[CartItem]:
        return self.db.execute(
            select(CartItem).where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
        ).scalar_one_or_none()

    def _increment(self, item_id: str, quantity: int) -> None:
        # Одно UPDATE: параллельные инкременты не теряются
        self.db.execute(
            update(CartItem)
            .where(CartItem.id == item_id)
            .values(quantity=CartItem.quantity + quantity)
            .execution_options(synchronize_session=False)
        )

    def _touch(self, cart_id: str) -> None:
        self.db.execute(
            update(Cart)
            .where(Cart.id == cart_id)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def add_or_increment(self, cart: Cart, product: Product, quantity: int) -> CartItem:
        cart_id = cart.id
        try:
            item = self._find_line(cart_id, product.id)
            if item is not None:
                self._increment(item.id, quantity)
            else:
                item = CartItem(
                    cart_id=cart_id,
                    product_id=product.id,
                    quantity=quantity,
                    price_at_time=product.price
                )
                self.db.add(item)
                try:
                    self.db.flush()
                except IntegrityError:
                    # Строку (cart, product) успели вставить параллельно
                    self.db.rollback()
                    item = self._find_line(cart_id, product.id)
                    if item is None:
                        raise
                    self._increment(item.id, quantity)

            self._touch(cart_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(item)
        return item

    def set_quantity(self, item: CartItem, quantity: int) -> CartItem:
        try:
            item.quantity = quantity
            self._touch(item.cart_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(item)
        return item

    def delete_item(self, item: CartItem) -> None:
        cart_id = item.cart_id
        try:
            self.db.execute(delete(CartItem).where(CartItem.id == item.id))
            self._touch(cart_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.expire_all()

    def clear(self, cart: Cart) -> int:
        cart_id = cart.id
        try:
            result = self.db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
            self._touch(cart_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.expire_all()
        return result.rowcount or 0

    def merge(self, guest_cart: Cart, user_cart: Cart) -> int:
        user_cart_id = user_cart.id
        moved = 0
        try:
            for guest_item in list(guest_cart.items):
                existing = self._find_line(user_cart_id, guest_item.product_id)
                if existing is not None:
                    # Цена позиции пользователя остаётся прежней
                    self._increment(existing.id, guest_item.quantity)
                else:
                    self.db.add(CartItem(
                        cart_id=user_cart_id,
                        product_id=guest_item.product_id,
                        quantity=guest_item.quantity,
                        price_at_time=guest_item.price_at_time
                    ))
                moved += 1

            self.db.delete(guest_cart)
            self._touch(user_cart_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.expire_all()
        return moved

    def delete_guest_carts_idle_since(self, cutoff: datetime) -> int:
        stale_ids = select(Cart.id).where(Cart.user_id.is_(None), Cart.updated_at < cutoff)
        try:
            self.db.execute(
                delete(CartItem)
                .where(CartItem.cart_id.in_(stale_ids))
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(
                delete(Cart)
                .where(Cart.user_id.is_(None), Cart.updated_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount or 0


class SqlOrderRepository(OrderRepository):

    def __init__(self, db: Session):
        self.db = db

    def place_from_cart(self, cart: Cart, details: Dict[str, Any]) -> Order:
        try:
            total_amount = Decimal("0")
            total_items = 0
            order_items = []

            for line in cart.items:
                product = self.db.get(Product, line.product_id)
                if product is None or not product.active:
                    raise ProductNotFound(f"Product {line.product_id} is no longer available")

                # Списание только если остатка хватает
                result = self.db.execute(
                    update(Product)
                    .where(Product.id == line.product_id, Product.stock >= line.quantity)
                    .values(stock=Product.stock - line.quantity)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise InsufficientStock(f"Insufficient stock for {product.name}")

                line_total = Decimal(line.price_at_time) * line.quantity
                total_amount += line_total
                total_items += line.quantity
                order_items.append(OrderItem(
                    product_id=line.product_id,
                    product_name=product.name,
                    quantity=line.quantity,
                    unit_price=line.price_at_time,
                    total_price=line_total
                ))

            order = Order(
                user_id=cart.user_id,
                session_id=cart.session_id,
                status=OrderStatus.PENDING,
                total_amount=total_amount,
                total_items=total_items,
                items=order_items,
                **details
            )
            self.db.add(order)

            self.db.execute(delete(CartItem).where(CartItem.cart_id == cart.id))
            self.db.execute(
                update(Cart)
                .where(Cart.id == cart.id)
                .values(updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.expire_all()
        return self.get(order.id)

    def get(self, order_id: str) -> Optional[Order]:
        query = select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        return self.db.execute(query).scalar_one_or_none()

    def _filtered(self, query, user_id: Optional[str], status: Optional[OrderStatus]):
        if user_id:
            query = query.where(Order.user_id == user_id)
        if status:
            query = query.where(Order.status == status)
        return query

    def list(self, skip: int, limit: int, user_id: Optional[str] = None,
             status: Optional[OrderStatus] = None) -> List[Order]:
        query = self._filtered(select(Order).options(selectinload(Order.items)), user_id, status)
        query = query.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(self.db.execute(query).scalars().all())

    def count(self, user_id: Optional[str] = None, status: Optional[OrderStatus] = None) -> int:
        query = self._filtered(select(func.count(Order.id)), user_id, status)
        return self.db.execute(query).scalar() or 0

    def set_status(self, order: Order, status: OrderStatus) -> Order:
        try:
            order.status = status
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return order
