"""Audit log model for tracking billing state changes."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from snt_billing.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry for a committed change to a charge, invoice or payment.

    Records who (actor_id) did what (action) to which entity (entity_type,
    entity_id) and optional metadata (changes).
    """

    __tablename__ = "audit_logs"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False, index=True)
    """Tenant the change belongs to."""

    entity_type: Mapped[str] = mapped_column(String(50))
    """Entity type being audited: "Charge", "Invoice", "Payment"."""

    entity_id: Mapped[str] = mapped_column(String(64))
    """Primary key of the entity (payments use string ids)."""

    action: Mapped[str] = mapped_column(String(64))
    """Action performed: "CHARGE_CREATED", "INVOICE_CANCELED", etc."""

    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    """User who performed the action. None for provider callbacks."""

    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    """Correlation id of the HTTP request, when known."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Optional JSON snapshot: {"added": 2, "removed": 1}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor_id={self.actor_id}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
