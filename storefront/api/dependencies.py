from typing import Optional

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..exceptions import AuthenticationError, Forbidden
from ..repositories.sql import SqlCartRepository, SqlOrderRepository, SqlProductRepository
from ..services.auth import Identity, decode_access_token, generate_session_id
from ..services.cart_service import CartService
from ..services.order_service import OrderService
from ..services.product_service import ProductService
from ..services.whatsapp_client import WhatsAppClient, whatsapp_client


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    """Dependency для получения CartService"""
    return CartService(SqlCartRepository(db), SqlProductRepository(db))


def get_product_service(db: Session = Depends(get_db)) -> ProductService:
    """Dependency для получения ProductService"""
    return ProductService(SqlProductRepository(db))


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    """Dependency для получения OrderService"""
    return OrderService(SqlOrderRepository(db), SqlCartRepository(db))


def get_whatsapp_client() -> WhatsAppClient:
    """Dependency для получения клиента WhatsApp"""
    return whatsapp_client


def read_session_id(request: Request) -> Optional[str]:
    """ID гостевой сессии: сначала cookie, затем заголовок"""
    return request.cookies.get(settings.session_cookie_name) or request.headers.get(settings.session_header_name)


def _bearer_identity(request: Request) -> Optional[Identity]:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("No token provided")
    return decode_access_token(token.strip())


def get_identity(request: Request) -> Identity:
    """
    Личность запроса. Пользователь из токена (если передан),
    плюс гостевая сессия из cookie/заголовка.
    """
    session_id = read_session_id(request)
    user = _bearer_identity(request)
    if user is None:
        return Identity(session_id=session_id)
    return Identity(user_id=user.user_id, session_id=session_id, role=user.role, email=user.email)


def set_session_cookie(response: Response, session_id: str):
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_cookie_max_age_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="strict",
    )


def clear_session_cookie(response: Response):
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="strict",
    )


def get_or_mint_identity(request: Request, response: Response) -> Identity:
    """Как get_identity, но анонимному посетителю выдаёт новую гостевую сессию"""
    identity = get_identity(request)
    if identity.is_anonymous:
        session_id = generate_session_id()
        set_session_cookie(response, session_id)
        request.state.minted_session = True
        return Identity.guest(session_id)
    return identity


def require_user(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_authenticated:
        raise AuthenticationError("Authentication required")
    return identity


def require_admin(identity: Identity = Depends(require_user)) -> Identity:
    if not identity.is_admin:
        raise Forbidden()
    return identity
