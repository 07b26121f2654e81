from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base, utcnow


class User(Base):
    """Local profile for a Supabase identity. `id` is the Supabase user id."""
    __tablename__ = 'users'

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255))
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default='USER')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_users_email', 'email', unique=True),
        Index('ix_users_role', 'role'),
    )

    @property
    def display_name(self) -> str:
        """'First Last' when both parts are present, otherwise the email."""
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.email
