from fastapi import APIRouter
from .routes.cart import router as cart_router
from .routes.orders import router as orders_router
from .routes.products import router as products_router
from .routes.whatsapp import router as whatsapp_router

# Создаем основной API router
api_router = APIRouter(prefix="/api/v1")

# Подключаем роуты
api_router.include_router(products_router)
api_router.include_router(cart_router)
api_router.include_router(orders_router)
api_router.include_router(whatsapp_router)

__all__ = ["api_router"]
