import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..exceptions import ProductNotFound
from ..models.product import Product
from ..repositories.base import ProductRepository
from ..schemas.product import Pagination, ProductCreate, ProductListResponse, ProductResponse, ProductUpdate
from .kafka_client import KafkaClient, kafka_client

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ProductService:
    """Сервис каталога: витрина и администрирование товаров"""

    def __init__(self, products: ProductRepository, events: Optional[KafkaClient] = None):
        self.products = products
        self.events = events or kafka_client

    def list_products(
            self,
            page: int = 1,
            limit: int = 20,
            category: Optional[str] = None,
            min_price: Optional[float] = None,
            max_price: Optional[float] = None,
            featured: Optional[bool] = None,
            search: Optional[str] = None,
            sort: str = "created_at",
            order: str = "desc"
    ) -> ProductListResponse:
        """Список активных товаров с фильтрами и пагинацией"""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        filters: Dict[str, Any] = {
            "category": category,
            "min_price": min_price,
            "max_price": max_price,
            "featured": featured,
            "search": search,
        }

        products = self.products.list(
            skip=(page - 1) * limit,
            limit=limit,
            filters=filters,
            sort=sort,
            order=order
        )
        total = self.products.count(filters)
        total_pages = (total + limit - 1) // limit

        return ProductListResponse(
            data=[ProductResponse.model_validate(p) for p in products],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=total_pages,
                has_next_page=page < total_pages,
                has_prev_page=page > 1
            )
        )

    def featured_products(self, limit: int = 8) -> List[Product]:
        return self.products.list(
            skip=0,
            limit=min(max(limit, 1), MAX_PAGE_SIZE),
            filters={"featured": True},
            sort="created_at",
            order="desc"
        )

    def categories(self) -> List[str]:
        return self.products.categories()

    def get_product(self, product_id: str) -> Product:
        product = self.products.get_active(product_id)
        if product is None:
            raise ProductNotFound("Product not found")
        return product

    async def create_product(self, data: ProductCreate) -> Product:
        values = data.model_dump()
        values["price"] = Decimal(str(values["price"]))

        product = self.products.create(values)
        logger.info(f"✅ Product {product.id} created: {product.name}")
        await self._publish_changed(product, "created")
        return product

    async def update_product(self, product_id: str, data: ProductUpdate) -> Product:
        product = self.products.get(product_id)
        if product is None:
            raise ProductNotFound("Product not found")

        # Только переданные поля; null для обязательных полей игнорируем
        values = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field in ("description", "image_url")
        }
        if "price" in values:
            values["price"] = Decimal(str(values["price"]))

        product = self.products.update(product, values)
        logger.info(f"✅ Product {product.id} updated: {sorted(values)}")
        await self._publish_changed(product, "updated", changes=sorted(values))
        return product

    async def delete_product(self, product_id: str) -> Product:
        """Мягкое удаление: товар скрывается из каталога и корзин"""
        product = self.products.get(product_id)
        if product is None or not product.active:
            raise ProductNotFound("Product not found")

        product = self.products.deactivate(product)
        logger.info(f"🗑️ Product {product.id} deactivated")
        await self._publish_changed(product, "deactivated")
        return product

    async def _publish_changed(self, product: Product, action: str, changes: Optional[List[str]] = None):
        try:
            await self.events.publish_event(
                topic="product.changed",
                event_type=f"product_{action}",
                payload={
                    "product_id": product.id,
                    "price": float(product.price),
                    "stock": product.stock,
                    "active": product.active,
                    "changes": changes or [],
                    "action": action
                },
                key=product.id
            )
        except Exception as e:
            logger.error(f"❌ Failed to publish product_{action} event: {e}")
