from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from fastapi.responses import PlainTextResponse

from ...exceptions import InvalidWebhookPayload
from ...schemas.whatsapp import SendMessageRequest, ShareCartRequest, ShareProductRequest
from ...services.auth import Identity
from ...services.cart_service import CartService
from ...services.product_service import ProductService
from ...services.whatsapp_client import WhatsAppClient
from ..dependencies import (
    get_cart_service,
    get_identity,
    get_product_service,
    get_whatsapp_client,
    require_admin,
    require_user,
)

WHATSAPP_OBJECT = "whatsapp_business_account"

# Webhook вызывается самим WhatsApp, поэтому живёт вне /api/v1
webhook_router = APIRouter(prefix="/webhook", tags=["whatsapp"])
router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])


@webhook_router.get("", response_class=PlainTextResponse)
async def verify_webhook(
        mode: Optional[str] = Query(None, alias="hub.mode"),
        token: Optional[str] = Query(None, alias="hub.verify_token"),
        challenge: Optional[str] = Query(None, alias="hub.challenge"),
        whatsapp: WhatsAppClient = Depends(get_whatsapp_client)
):
    """Подтверждение подписки webhook"""
    return whatsapp.verify_webhook(mode, token, challenge)


@webhook_router.post("")
async def receive_webhook(
        background_tasks: BackgroundTasks,
        payload: Dict[str, Any] = Body(...),
        whatsapp: WhatsAppClient = Depends(get_whatsapp_client)
):
    """Входящие сообщения и статусы доставки"""
    if "object" not in payload:
        raise InvalidWebhookPayload()
    if payload["object"] != WHATSAPP_OBJECT:
        raise InvalidWebhookPayload("Invalid webhook object type", code="INVALID_WEBHOOK_OBJECT")

    # Отвечаем сразу, иначе WhatsApp повторит доставку
    background_tasks.add_task(whatsapp.handle_webhook, payload)
    return {"success": True, "message": "Webhook received"}


@router.get("/status")
async def get_status(
        identity: Identity = Depends(require_user),
        whatsapp: WhatsAppClient = Depends(get_whatsapp_client)
):
    """Состояние интеграции с WhatsApp"""
    return {"success": True, "data": whatsapp.status()}


@router.post("/share-cart")
async def share_cart(
        body: ShareCartRequest,
        identity: Identity = Depends(get_identity),
        cart_service: CartService = Depends(get_cart_service),
        whatsapp: WhatsAppClient = Depends(get_whatsapp_client)
):
    """Отправка содержимого корзины в WhatsApp"""
    summary = cart_service.find_cart(identity)
    result = await whatsapp.share_cart(summary, body.phone_number, body.message)
    return {"success": True, "message": "Cart shared via WhatsApp", "data": result}


@router.post("/share-product")
async def share_product(
        body: ShareProductRequest,
        product_service: ProductService = Depends(get_product_service),
        whatsapp: WhatsAppClient = Depends(get_whatsapp_client)
):
    """Отправка карточки товара в WhatsApp"""
    product = product_service.get_product(body.product_id)
    result = await whatsapp.share_product(product, body.phone_number, body.message)
    return {"success": True, "message": "Product shared via WhatsApp", "data": result}


@router.post("/test")
async def send_test_message(
        body: SendMessageRequest,
        admin: Identity = Depends(require_admin),
        whatsapp: WhatsAppClient = Depends(get_whatsapp_client)
):
    result = await whatsapp.send_message(body.phone_number, body.message or "Test message from the storefront API")
    return {"success": True, "message": "Test message sent", "data": result}
