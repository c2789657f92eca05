import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, String
from sqlalchemy.orm import relationship
from ..database import Base, utcnow


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # Владелец ровно один: пользователь или гостевая сессия
        CheckConstraint(
            "(user_id IS NULL) <> (session_id IS NULL)",
            name="ck_carts_single_owner",
        ),
    )

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, unique=True, nullable=True, index=True)
    session_id = Column(String, unique=True, nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Связь с позициями корзины
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )
