import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import Base, check_connection, engine
from .api import api_router
from .api.routes.whatsapp import webhook_router
from .exceptions import StorefrontError
from .services.kafka_client import kafka_client
from .services.whatsapp_client import whatsapp_client
from .tasks.cart_cleanup import guest_cart_janitor
from . import models  # noqa: F401  регистрирует таблицы в Base.metadata

# Настройка логирования
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    # Startup
    logger.info("Starting Storefront Cart Service...")

    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")

        await kafka_client.start_producer()

        if whatsapp_client.enabled:
            logger.info("✅ WhatsApp integration enabled")
        else:
            logger.warning("⚠️ WhatsApp integration disabled - missing configuration")

        if settings.guest_cart_cleanup_enabled:
            guest_cart_janitor.start()

        logger.info("✅ Storefront Cart Service started successfully!")

        yield  # Приложение работает

    except Exception as e:
        logger.error(f"❌ Failed to start Storefront Cart Service: {e}")
        raise

    # Shutdown
    logger.info("Shutting down Storefront Cart Service...")

    await guest_cart_janitor.stop()
    await kafka_client.stop_producer()

    logger.info("✅ Storefront Cart Service shut down successfully!")


# Создаем FastAPI приложение
app = FastAPI(
    title=settings.app_name,
    description="Каталог, корзина (гостевая и пользовательская) и оформление заказов",
    version=VERSION,
    debug=settings.debug,
    lifespan=lifespan
)

# Middleware для CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

# Подключаем роуты
app.include_router(api_router)
app.include_router(webhook_router)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_body(code: str, message: str, **extra) -> dict:
    return {
        "success": False,
        "error": {"code": code, "message": message, **extra},
        "timestamp": _now()
    }


# Health check endpoints
@app.get("/health")
async def health_check():
    """Проверка здоровья сервиса"""
    try:
        check_connection()
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        db_status = "disconnected"

    kafka_status = "connected" if kafka_client.producer else ("disabled" if not kafka_client.enabled else "disconnected")
    body = {
        "status": "healthy" if db_status == "connected" else "unhealthy",
        "service": settings.app_name,
        "database": db_status,
        "kafka": kafka_status,
        "whatsapp": "configured" if whatsapp_client.enabled else "disabled",
        "version": VERSION,
        "timestamp": _now()
    }
    return JSONResponse(status_code=200 if db_status == "connected" else 503, content=body)


@app.get("/")
async def root():
    """Корневой endpoint"""
    return {
        "service": settings.app_name,
        "version": VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "docs": "/docs",
            "products": "/api/v1/products",
            "cart": "/api/v1/cart",
            "orders": "/api/v1/orders",
            "whatsapp": "/api/v1/whatsapp"
        }
    }


# Exception handlers
@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=_error_body("VALIDATION_ERROR", "Validation failed", details=jsonable_encoder(exc.errors()))
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    return JSONResponse(status_code=exc.status_code, content=_error_body(code, str(exc.detail)))


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_body("INTERNAL_ERROR", "Internal Server Error")
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info"
    )
