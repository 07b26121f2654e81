from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, new_uuid, utcnow


class MarketStand(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = 'market_stands'

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey('users.id', ondelete='CASCADE'))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # PENDING -> APPROVED | REJECTED, written only by the approval workflow
    status: Mapped[str] = mapped_column(String(20), default='PENDING')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index('ix_market_stands_user_id', 'user_id'),
        Index('ix_market_stands_status', 'status'),
    )


class StandStatusHistory(Base):
    """Append-only audit log of market stand status changes."""
    __tablename__ = 'stand_status_history'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    market_stand_id: Mapped[str] = mapped_column(String(36), ForeignKey('market_stands.id', ondelete='RESTRICT'))
    old_status: Mapped[str] = mapped_column(String(20))
    new_status: Mapped[str] = mapped_column(String(20))
    changed_by_id: Mapped[str] = mapped_column(String(36), ForeignKey('users.id'))
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_stand_status_history_stand', 'market_stand_id', 'created_at'),
    )
