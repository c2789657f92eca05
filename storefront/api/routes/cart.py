from fastapi import APIRouter, Depends, Request, Response

from ...schemas.cart import CartSummary
from ...schemas.cart_item import CartItemCreate, CartItemUpdate
from ...services.auth import Identity
from ...services.cart_service import CartService
from ..dependencies import (
    clear_session_cookie,
    get_cart_service,
    get_identity,
    get_or_mint_identity,
    read_session_id,
    require_user,
)

router = APIRouter(prefix="/cart", tags=["cart"])


def _mutation_body(result) -> dict:
    data = {"cart": result.cart.model_dump()}
    if result.cart_item is not None:
        data["cart_item"] = result.cart_item.model_dump()
    return {"success": True, "message": result.message, "data": data}


@router.get("")
async def get_cart(
        request: Request,
        identity: Identity = Depends(get_or_mint_identity),
        cart_service: CartService = Depends(get_cart_service)
):
    """Получение текущей корзины"""
    if getattr(request.state, "minted_session", False):
        # Новому гостю отдаём пустую корзину, строку в БД не создаём
        summary = CartSummary(session_id=identity.session_id)
    else:
        summary = cart_service.get_cart(identity)
    return {"success": True, "data": summary.model_dump()}


@router.post("")
async def add_item_to_cart(
        item: CartItemCreate,
        identity: Identity = Depends(get_or_mint_identity),
        cart_service: CartService = Depends(get_cart_service)
):
    """Добавление товара в корзину"""
    result = await cart_service.add_item(identity, item.product_id, item.quantity)
    return _mutation_body(result)


@router.put("/items/{item_id}")
async def update_cart_item(
        item_id: str,
        item: CartItemUpdate,
        identity: Identity = Depends(get_identity),
        cart_service: CartService = Depends(get_cart_service)
):
    """Обновление количества товара в корзине"""
    result = await cart_service.update_item(identity, item_id, item.quantity)
    return _mutation_body(result)


@router.delete("/items/{item_id}")
async def remove_item_from_cart(
        item_id: str,
        identity: Identity = Depends(get_identity),
        cart_service: CartService = Depends(get_cart_service)
):
    """Удаление товара из корзины"""
    result = await cart_service.remove_item(identity, item_id)
    return _mutation_body(result)


@router.delete("")
async def clear_cart(
        identity: Identity = Depends(get_identity),
        cart_service: CartService = Depends(get_cart_service)
):
    """Очистка корзины"""
    result = await cart_service.clear_cart(identity)
    return _mutation_body(result)


@router.post("/merge")
async def merge_carts(
        request: Request,
        response: Response,
        identity: Identity = Depends(require_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Перенос гостевой корзины в корзину пользователя после входа"""
    result = await cart_service.merge_guest_cart(identity.user_id, read_session_id(request))

    if not result.merged:
        return {"success": True, "message": result.message}

    clear_session_cookie(response)
    return {
        "success": True,
        "message": result.message,
        "data": {"items_merged": result.items_merged, "cart": result.cart.model_dump()}
    }
