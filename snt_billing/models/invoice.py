"""Invoice ORM model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel, utcnow


class InvoiceStatus(str, Enum):
    """Invoice status.

    PENDING/PARTIAL/PAID are derived from paid vs total; CANCELED is set
    only by cancellation.
    """

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    CANCELED = "CANCELED"


class Invoice(Base, BaseModel):
    """The obligation a plot actually owes under a charge.

    ``number`` is derived from (charge_id, plot_id) and unique per tenant, which
    is what makes issuance idempotent. Invoices are never deleted.
    """

    __tablename__ = "invoices"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    charge_id: Mapped[int | None] = mapped_column(
        ForeignKey("charges.id"),
        nullable=True,
        index=True,
    )
    plot_id: Mapped[int] = mapped_column(ForeignKey("plots.id"), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        comment="Plot owner at issuance time",
    )
    number: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus, name="invoicestatus"),
        nullable=False,
        default=InvoiceStatus.PENDING,
    )
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    charge: Mapped["Charge | None"] = relationship("Charge")  # noqa: F821
    plot: Mapped["Plot"] = relationship("Plot")  # noqa: F821
    user: Mapped["User | None"] = relationship("User")  # noqa: F821

    __table_args__ = (
        Index("uq_invoice_tenant_number", "tenant_id", "number", unique=True),
        Index("idx_invoice_tenant_status", "tenant_id", "status"),
    )

    @property
    def outstanding_cents(self) -> int:
        return self.total_cents - self.paid_cents

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, number={self.number!r}, status={self.status}, "
            f"total_cents={self.total_cents}, paid_cents={self.paid_cents})>"
        )


__all__ = ["Invoice", "InvoiceStatus"]
