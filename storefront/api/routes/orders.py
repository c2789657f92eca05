from fastapi import APIRouter, Depends, Query
from typing import Optional

from ...models.order import OrderStatus
from ...schemas.order import CheckoutRequest, OrderListResponse, OrderResponse, OrderStatusUpdate
from ...services.auth import Identity
from ...services.order_service import OrderService
from ..dependencies import get_identity, get_order_service, require_admin, require_user

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/checkout", status_code=201)
async def checkout(
        request: CheckoutRequest,
        identity: Identity = Depends(get_identity),
        order_service: OrderService = Depends(get_order_service)
):
    """Оформление заказа из текущей корзины"""
    order = await order_service.checkout(identity, request)
    return {
        "success": True,
        "message": "Order created successfully",
        "data": OrderResponse.model_validate(order).model_dump(mode="json")
    }


@router.get("", response_model=OrderListResponse)
async def get_orders(
        page: int = Query(1, ge=1, description="Номер страницы"),
        per_page: int = Query(10, ge=1, le=100, description="Количество на странице"),
        status: Optional[OrderStatus] = Query(None, description="Фильтр по статусу"),
        all_users: bool = Query(False, description="Все заказы (только для администратора)"),
        identity: Identity = Depends(require_user),
        order_service: OrderService = Depends(get_order_service)
):
    """Список заказов с пагинацией"""
    orders, total = order_service.list_orders(
        identity,
        skip=(page - 1) * per_page,
        limit=per_page,
        status=status,
        all_users=all_users
    )
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=(total + per_page - 1) // per_page
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
        order_id: str,
        identity: Identity = Depends(get_identity),
        order_service: OrderService = Depends(get_order_service)
):
    """Заказ по ID (владелец или администратор)"""
    return order_service.get_order(identity, order_id)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
        order_id: str,
        body: OrderStatusUpdate,
        admin: Identity = Depends(require_admin),
        order_service: OrderService = Depends(get_order_service)
):
    """Обновить статус заказа"""
    return order_service.update_status(order_id, body.status)
