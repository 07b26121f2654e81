from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, new_uuid
from backend.app.models.delivery_zone import DeliveryZone
from backend.app.models.product import Product
from backend.app.models.user import User


class Order(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = 'orders'

    order_number: Mapped[str] = mapped_column(String(32), unique=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey('users.id'))
    market_stand_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey('market_stands.id'), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default='PENDING')
    type: Mapped[str] = mapped_column(String(20), default='PICKUP')
    # Required for DELIVERY orders to show up in fulfillment views
    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_zone_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey('delivery_zones.id'), nullable=True)
    pickup_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Money in integer cents
    subtotal: Mapped[int] = mapped_column(Integer, default=0)
    tax: Mapped[int] = mapped_column(Integer, default=0)
    fees: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    customer: Mapped[User] = relationship(foreign_keys=[user_id], lazy="raise")
    delivery_zone: Mapped[Optional[DeliveryZone]] = relationship(foreign_keys=[delivery_zone_id], lazy="raise")
    items: Mapped[List["OrderItem"]] = relationship(back_populates="order", lazy="raise")

    __table_args__ = (
        Index('ix_orders_user_id', 'user_id'),
        Index('ix_orders_status', 'status'),
        Index('ix_orders_created_at', 'created_at'),
        # Fulfillment view: zone + status + date
        Index('ix_orders_zone_status_date', 'delivery_zone_id', 'status', 'delivery_date'),
        Index('ix_orders_market_stand_id', 'market_stand_id'),
    )


class OrderItem(Base):
    __tablename__ = 'order_items'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey('orders.id', ondelete='CASCADE'))
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey('products.id'))
    quantity: Mapped[int] = mapped_column(Integer)
    price_at_time: Mapped[int] = mapped_column(Integer)  # cents

    order: Mapped[Order] = relationship(back_populates="items", lazy="raise")
    product: Mapped[Product] = relationship(lazy="raise")

    __table_args__ = (
        Index('ix_order_items_order_id', 'order_id'),
    )


class OrderIssue(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Customer-reported problem with an order. At most one open (PENDING/INVESTIGATING) per order."""
    __tablename__ = 'order_issues'

    order_id: Mapped[str] = mapped_column(String(36), ForeignKey('orders.id', ondelete='CASCADE'))
    reported_by_id: Mapped[str] = mapped_column(String(36), ForeignKey('users.id'))
    issue_type: Mapped[str] = mapped_column(String(20))
    description: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default='PENDING')
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey('users.id'), nullable=True)

    __table_args__ = (
        Index('ix_order_issues_order_status', 'order_id', 'status'),
        Index('ix_order_issues_status_created', 'status', 'created_at'),
    )
