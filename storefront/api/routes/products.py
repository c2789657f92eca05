from fastapi import APIRouter, Depends, Query
from typing import Literal, Optional

from ...schemas.product import ProductCreate, ProductListResponse, ProductResponse, ProductUpdate
from ...services.auth import Identity
from ...services.product_service import ProductService
from ..dependencies import get_product_service, require_admin

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
async def get_products(
        page: int = Query(1, ge=1, description="Номер страницы"),
        limit: int = Query(20, ge=1, le=100, description="Количество на странице"),
        category: Optional[str] = None,
        min_price: Optional[float] = Query(None, ge=0),
        max_price: Optional[float] = Query(None, ge=0),
        featured: Optional[bool] = None,
        search: Optional[str] = None,
        sort: str = "created_at",
        order: Literal["asc", "desc"] = "desc",
        product_service: ProductService = Depends(get_product_service)
):
    """Список товаров с фильтрами и пагинацией"""
    return product_service.list_products(
        page=page,
        limit=limit,
        category=category,
        min_price=min_price,
        max_price=max_price,
        featured=featured,
        search=search,
        sort=sort,
        order=order
    )


@router.get("/categories")
async def get_categories(product_service: ProductService = Depends(get_product_service)):
    """Список категорий активных товаров"""
    return {"success": True, "data": product_service.categories()}


@router.get("/featured")
async def get_featured_products(
        limit: int = Query(8, ge=1, le=100),
        product_service: ProductService = Depends(get_product_service)
):
    """Рекомендуемые товары"""
    products = product_service.featured_products(limit)
    return {"success": True, "data": [ProductResponse.model_validate(p).model_dump() for p in products]}


@router.get("/{product_id}")
async def get_product(product_id: str, product_service: ProductService = Depends(get_product_service)):
    """Товар по ID"""
    product = product_service.get_product(product_id)
    return {"success": True, "data": ProductResponse.model_validate(product).model_dump()}


# Администрирование каталога

@router.post("", status_code=201)
async def create_product(
        data: ProductCreate,
        admin: Identity = Depends(require_admin),
        product_service: ProductService = Depends(get_product_service)
):
    product = await product_service.create_product(data)
    return {
        "success": True,
        "message": "Product created successfully",
        "data": ProductResponse.model_validate(product).model_dump()
    }


@router.put("/{product_id}")
async def update_product(
        product_id: str,
        data: ProductUpdate,
        admin: Identity = Depends(require_admin),
        product_service: ProductService = Depends(get_product_service)
):
    product = await product_service.update_product(product_id, data)
    return {
        "success": True,
        "message": "Product updated successfully",
        "data": ProductResponse.model_validate(product).model_dump()
    }


@router.delete("/{product_id}")
async def delete_product(
        product_id: str,
        admin: Identity = Depends(require_admin),
        product_service: ProductService = Depends(get_product_service)
):
    await product_service.delete_product(product_id)
    return {"success": True, "message": "Product deleted successfully"}
