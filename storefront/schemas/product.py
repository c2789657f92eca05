from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class ProductBrief(BaseModel):
    """Данные товара, достаточные для отображения позиции корзины"""
    id: str
    name: str
    description: Optional[str] = None
    price: float
    category: str
    image_url: Optional[str] = None
    stock: int

    class Config:
        from_attributes = True


class ProductResponse(ProductBrief):
    featured: bool
    created_at: datetime
    updated_at: datetime


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=2)
    description: Optional[str] = None
    price: float = Field(..., gt=0)
    category: str = Field(..., min_length=1)
    image_url: Optional[str] = None
    stock: int = Field(0, ge=0)
    featured: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    category: Optional[str] = Field(None, min_length=1)
    image_url: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class ProductListResponse(BaseModel):
    success: bool = True
    data: List[ProductResponse]
    pagination: Pagination
