import httpx
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from ..config import settings
from ..exceptions import (
    CartNotFound,
    StorefrontError,
    WebhookVerificationFailed,
    WhatsAppDeliveryError,
    WhatsAppNotConfigured,
)
from ..models.product import Product
from ..schemas.cart import CartSummary

logger = logging.getLogger(__name__)

AUTO_REPLY = (
    "Thank you for your message! We'll get back to you shortly.\n"
    "Type \"cart\" to share your cart or \"help\" for assistance."
)

BUTTON_REPLIES = {
    "browse_products": "You can browse our products in the online catalog.",
    "contact_support": "Our support team will contact you shortly.",
    "order_status": "Please share your order number to check its status.",
}

MEDIA_TYPES = ("image", "video", "document", "audio", "sticker")


def _money(value) -> str:
    return f"${Decimal(str(value)):.2f}"


def cart_share_text(summary: CartSummary, store_name: str) -> str:
    """Текст сообщения со списком позиций и итогами корзины"""
    lines = [
        f"{index}. {item.product.name} - {_money(item.price_at_time)} x {item.quantity}"
        for index, item in enumerate(summary.items, start=1)
    ]
    return (
        f"Hello! I'm interested in these items from {store_name}:\n\n"
        + "\n".join(lines)
        + f"\n\nItems: {summary.total_items}\nTotal: {_money(summary.total_price)}"
    )


def product_inquiry_text(product: Product, store_name: str) -> str:
    text = f"I'm interested in this product from {store_name}:\n\n{product.name}\n{_money(product.price)}"
    if product.description:
        text += f"\n{product.description}"
    return text


def message_type(message: Dict[str, Any]) -> str:
    for kind in ("text", "interactive", *MEDIA_TYPES, "location", "contacts"):
        if message.get(kind):
            return kind
    return "unknown"


class WhatsAppClient:
    """Клиент WhatsApp Cloud API: отправка сообщений и разбор входящих"""

    def __init__(
            self,
            access_token: Optional[str] = None,
            phone_number_id: Optional[str] = None,
            verify_token: Optional[str] = None,
            business_account_id: Optional[str] = None,
            api_url: Optional[str] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.access_token = settings.whatsapp_access_token if access_token is None else access_token
        self.phone_number_id = settings.whatsapp_phone_number_id if phone_number_id is None else phone_number_id
        self.verify_token = settings.whatsapp_verify_token if verify_token is None else verify_token
        self.business_account_id = (
            settings.whatsapp_business_account_id if business_account_id is None else business_account_id
        )
        self.api_url = (api_url or settings.whatsapp_api_url).rstrip("/")
        self.timeout = settings.whatsapp_timeout_seconds
        self.transport = transport
        self.enabled = all(self.requirements().values())

    def requirements(self) -> Dict[str, bool]:
        return {
            "access_token": bool(self.access_token),
            "phone_number_id": bool(self.phone_number_id),
            "verify_token": bool(self.verify_token),
            "business_account_id": bool(self.business_account_id),
        }

    def status(self) -> Dict[str, Any]:
        return {
            "configured": self.enabled,
            "features": {
                "cart_sharing": self.enabled,
                "product_inquiry": self.enabled,
                "customer_support": self.enabled,
            },
            "requirements": self.requirements(),
        }

    def _ensure_enabled(self):
        if not self.enabled:
            raise WhatsAppNotConfigured()

    def verify_webhook(self, mode: Optional[str], token: Optional[str], challenge: Optional[str]) -> str:
        """Проверка подписки webhook: возвращает challenge"""
        self._ensure_enabled()
        if mode != "subscribe" or token != self.verify_token:
            logger.warning(f"Webhook verification rejected (mode={mode})")
            raise WebhookVerificationFailed()
        return challenge or ""

    async def send_message(self, to: str, body: str) -> Dict[str, Any]:
        """Отправка текстового сообщения"""
        self._ensure_enabled()

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_url}/{self.phone_number_id}/messages",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.access_token}"}
                )
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException:
            logger.error(f"Timeout when sending WhatsApp message to {to}")
            raise WhatsAppDeliveryError("WhatsApp API timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"WhatsApp API rejected message to {to}: {e.response.status_code} {e.response.text}")
            raise WhatsAppDeliveryError()
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp message to {to}: {e}")
            raise WhatsAppDeliveryError()

        logger.info(f"📨 WhatsApp message sent to {to}")
        return data

    async def share_cart(self, summary: Optional[CartSummary], phone_number: str,
                         custom_message: Optional[str] = None) -> Dict[str, Any]:
        self._ensure_enabled()
        if summary is None or not summary.items:
            raise CartNotFound()
        body = custom_message or cart_share_text(summary, settings.store_name)
        return await self.send_message(phone_number, body)

    async def share_product(self, product: Product, phone_number: str,
                            custom_message: Optional[str] = None) -> Dict[str, Any]:
        self._ensure_enabled()
        body = custom_message or product_inquiry_text(product, settings.store_name)
        return await self.send_message(phone_number, body)

    async def handle_webhook(self, payload: Dict[str, Any]) -> int:
        """Обработка входящих сообщений из webhook. Возвращает число обработанных"""
        handled = 0
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                value = change.get("value") or {}
                for status in value.get("statuses") or []:
                    logger.info(f"WhatsApp message {status.get('id')} status: {status.get('status')}")
                for message in value.get("messages") or []:
                    await self.process_message(message)
                    handled += 1
        return handled

    async def process_message(self, message: Dict[str, Any]):
        """Автоответ на входящее сообщение. Ошибки отправки только логируются"""
        if not self.enabled:
            logger.warning("WhatsApp is not configured, ignoring incoming message")
            return

        sender = message.get("from")
        kind = message_type(message)
        logger.info(f"Received WhatsApp {kind} message from {sender}")

        if kind == "text":
            reply = AUTO_REPLY
        elif kind == "interactive":
            button = (message["interactive"].get("button_reply") or {})
            reply = BUTTON_REPLIES.get(
                button.get("id"),
                f"You selected: {button.get('title', 'an option')}. How can we help?"
            )
        elif kind in MEDIA_TYPES:
            reply = f"Thanks for sharing the {kind}! Our team will review it."
        else:
            logger.info(f"Unhandled WhatsApp message type: {kind}")
            return

        try:
            await self.send_message(sender, reply)
        except StorefrontError as e:
            logger.error(f"❌ Failed to reply to {sender}: {e.message}")


# Глобальный экземпляр клиента
whatsapp_client = WhatsAppClient()
