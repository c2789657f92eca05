from typing import Optional


class StorefrontError(Exception):
    """Базовая ошибка уровня клиента: HTTP-статус, машинный код и сообщение"""

    status_code: int = 400
    code: str = "BAD_REQUEST"
    message: str = "Bad request"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.message = message or self.message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ProductNotFound(StorefrontError):
    status_code = 404
    code = "PRODUCT_NOT_FOUND"
    message = "Product not found or unavailable"


class InsufficientStock(StorefrontError):
    status_code = 400
    code = "INSUFFICIENT_STOCK"
    message = "Insufficient stock"


class InvalidQuantity(StorefrontError):
    status_code = 400
    code = "INVALID_QUANTITY"
    message = "Quantity must be at least 1"


class CartItemNotFound(StorefrontError):
    status_code = 404
    code = "CART_ITEM_NOT_FOUND"
    message = "Cart item not found"


class Unauthorized(StorefrontError):
    """Позиция принадлежит чужой корзине"""

    status_code = 403
    code = "UNAUTHORIZED"
    message = "Unauthorized"


class InvalidIdentity(StorefrontError):
    status_code = 400
    code = "INVALID_IDENTITY"
    message = "Either userId or sessionId is required"


class AuthenticationError(StorefrontError):
    status_code = 401
    code = "AUTH_FAILED"
    message = "Authentication failed"


class Forbidden(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Insufficient permissions"


class EmptyCart(StorefrontError):
    status_code = 400
    code = "CART_EMPTY"
    message = "Cart is empty"


class OrderNotFound(StorefrontError):
    status_code = 404
    code = "ORDER_NOT_FOUND"
    message = "Order not found"


class CartNotFound(StorefrontError):
    status_code = 404
    code = "CART_NOT_FOUND"
    message = "Cart not found or empty"


class WhatsAppNotConfigured(StorefrontError):
    status_code = 503
    code = "WHATSAPP_NOT_CONFIGURED"
    message = "WhatsApp integration not configured"


class WebhookVerificationFailed(StorefrontError):
    status_code = 403
    code = "WEBHOOK_VERIFICATION_FAILED"
    message = "Invalid verification token"


class InvalidWebhookPayload(StorefrontError):
    status_code = 400
    code = "INVALID_WEBHOOK_PAYLOAD"
    message = "Invalid webhook payload"


class WhatsAppDeliveryError(StorefrontError):
    """WhatsApp Cloud API не принял сообщение"""

    status_code = 502
    code = "WHATSAPP_SEND_FAILED"
    message = "Failed to send WhatsApp message"
