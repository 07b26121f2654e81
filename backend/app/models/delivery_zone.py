from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class DeliveryZone(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = 'delivery_zones'

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey('users.id', ondelete='CASCADE'))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Coverage lists; an address is covered when any one of them matches
    zip_codes: Mapped[List[str]] = mapped_column(JSON(), default=list)
    cities: Mapped[List[str]] = mapped_column(JSON(), default=list)
    states: Mapped[List[str]] = mapped_column(JSON(), default=list)
    # Weekday names, e.g. ["Tuesday", "Friday"]
    delivery_days: Mapped[List[str]] = mapped_column(JSON(), default=list)
    # [{"day": "Tuesday", "startTime": "09:00", "endTime": "12:00"}, ...]
    delivery_time_windows: Mapped[Optional[list]] = mapped_column(JSON(), nullable=True)
    # Money in integer cents
    delivery_fee: Mapped[int] = mapped_column(Integer, default=0)
    free_delivery_threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    minimum_order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Admin moderation
    flagged_for_review: Mapped[bool] = mapped_column(Boolean, default=False)
    flag_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_suspended: Mapped[bool] = mapped_column(Boolean, default=False)
    suspended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    suspended_by_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey('users.id'), nullable=True)
    suspension_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index('ix_delivery_zones_user_id', 'user_id'),
        Index('ix_delivery_zones_user_active', 'user_id', 'is_active'),
        Index('ix_delivery_zones_flagged', 'flagged_for_review'),
        Index('ix_delivery_zones_suspended', 'is_suspended'),
    )
