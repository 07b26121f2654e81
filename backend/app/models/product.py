from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, new_uuid, utcnow


class Product(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = 'products'

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey('users.id', ondelete='CASCADE'))
    market_stand_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey('market_stands.id', ondelete='SET NULL'), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer)  # cents
    images: Mapped[List[str]] = mapped_column(JSON(), default=list)
    inventory: Mapped[int] = mapped_column(Integer, default=0)
    # PENDING -> APPROVED | REJECTED, written only by the approval workflow
    status: Mapped[str] = mapped_column(String(20), default='PENDING')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Delivery availability
    delivery_available: Mapped[bool] = mapped_column(Boolean, default=False)
    delivery_zone_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey('delivery_zones.id', ondelete='SET NULL'), nullable=True
    )
    # RECURRING | ONE_TIME | null. The columns below are only written through
    # services.delivery_schedule, which keeps exactly one of them populated.
    delivery_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    # {"Monday": {"enabled": true, "inventory": 10}, ...}
    delivery_schedule: Mapped[Optional[dict]] = mapped_column(JSON(), nullable=True)
    # ["2025-06-03", ...]
    delivery_dates: Mapped[List[str]] = mapped_column(JSON(), default=list)

    __table_args__ = (
        Index('ix_products_user_id', 'user_id'),
        Index('ix_products_status', 'status'),
        Index('ix_products_market_stand_id', 'market_stand_id'),
        Index('ix_products_delivery_zone_id', 'delivery_zone_id'),
        Index('ix_products_status_active', 'status', 'is_active'),
    )


class ProductStatusHistory(Base):
    """Append-only audit log of product status changes."""
    __tablename__ = 'product_status_history'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey('products.id', ondelete='RESTRICT'))
    old_status: Mapped[str] = mapped_column(String(20))
    new_status: Mapped[str] = mapped_column(String(20))
    changed_by_id: Mapped[str] = mapped_column(String(36), ForeignKey('users.id'))
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_product_status_history_product', 'product_id', 'created_at'),
    )
