"""Payment and PaymentWebhookEvent ORM models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel, utcnow


class PaymentProvider(str, Enum):
    """External payment rails."""

    T_BANK = "T_BANK"


class PaymentStatus(str, Enum):
    """Payment attempt status as reported by the provider."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @classmethod
    def from_provider(cls, raw: str) -> "PaymentStatus":
        """Map a provider status string; anything unknown stays PENDING."""
        normalized = (raw or "").strip().upper()
        if normalized == cls.SUCCESS.value:
            return cls.SUCCESS
        if normalized == cls.FAILED.value:
            return cls.FAILED
        return cls.PENDING


def _new_payment_id() -> str:
    return str(uuid4())


class Payment(Base, BaseModel):
    """One attempt to pay one invoice through the provider.

    Unique per (tenant_id, idempotency_key): a retried initiation returns the
    original row instead of creating a second attempt.
    """

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_payment_id)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), nullable=False, index=True)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    provider: Mapped[PaymentProvider] = mapped_column(
        SQLEnum(PaymentProvider, name="paymentprovider"),
        nullable=False,
        default=PaymentProvider.T_BANK,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="paymentstatus"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    provider_payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    external_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    raw_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    invoice: Mapped["Invoice"] = relationship("Invoice")  # noqa: F821

    __table_args__ = (
        Index("uq_payment_tenant_idempotency_key", "tenant_id", "idempotency_key", unique=True),
        Index("idx_payment_tenant_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, invoice_id={self.invoice_id}, status={self.status}, "
            f"amount_cents={self.amount_cents})>"
        )


class PaymentWebhookEvent(Base):
    """One provider callback. Its existence means the event was already applied."""

    __tablename__ = "payment_webhook_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    provider: Mapped[PaymentProvider] = mapped_column(
        SQLEnum(PaymentProvider, name="paymentprovider"),
        nullable=False,
    )
    event_id: Mapped[str] = mapped_column(String(128), nullable=False)
    payment_id: Mapped[str | None] = mapped_column(ForeignKey("payments.id"), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("uq_webhook_provider_event", "provider", "event_id", unique=True),
        Index("idx_webhook_tenant_received", "tenant_id", "received_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentWebhookEvent(id={self.id}, provider={self.provider}, "
            f"event_id={self.event_id!r}, payment_id={self.payment_id})>"
        )


__all__ = ["Payment", "PaymentProvider", "PaymentStatus", "PaymentWebhookEvent"]
