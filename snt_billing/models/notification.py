"""In-app notification ORM model."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from snt_billing.models import Base, BaseModel


class NotificationType(str, Enum):
    """Notification categories produced by billing."""

    SYSTEM = "SYSTEM"
    BILLING = "BILLING"


class InAppNotification(Base, BaseModel):
    """Message shown in the resident's notification feed."""

    __tablename__ = "in_app_notifications"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, name="notificationtype"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_notification_tenant_user", "tenant_id", "user_id"),)

    def __repr__(self) -> str:
        return f"<InAppNotification(id={self.id}, user_id={self.user_id}, type={self.type})>"


__all__ = ["InAppNotification", "NotificationType"]
