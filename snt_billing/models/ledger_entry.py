"""LedgerEntry ORM model: the append-only billing journal."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, event
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from snt_billing.models import Base, utcnow


class LedgerKind(str, Enum):
    """Journal row kind.

    ACCRUAL and PAYMENT are positive; ADJUSTMENT for a cancellation is the
    negated invoice total.
    """

    ACCRUAL = "ACCRUAL"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"


class LedgerEntry(Base):
    """One immutable journal row."""

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    plot_id: Mapped[int | None] = mapped_column(ForeignKey("plots.id"), nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("invoices.id"),
        nullable=True,
        index=True,
    )
    payment_id: Mapped[str | None] = mapped_column(ForeignKey("payments.id"), nullable=True)
    kind: Mapped[LedgerKind] = mapped_column(SQLEnum(LedgerKind, name="ledgerkind"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    posted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (Index("idx_ledger_tenant_posted", "tenant_id", "posted_at"),)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, kind={self.kind}, invoice_id={self.invoice_id}, "
            f"amount_cents={self.amount_cents})>"
        )


class LedgerImmutableError(RuntimeError):
    """Raised when code tries to rewrite or delete a journal row."""


@event.listens_for(LedgerEntry, "before_update")
def _refuse_update(mapper, connection, target) -> None:
    raise LedgerImmutableError(f"Ledger entry {target.id} is append-only")


@event.listens_for(LedgerEntry, "before_delete")
def _refuse_delete(mapper, connection, target) -> None:
    raise LedgerImmutableError(f"Ledger entry {target.id} cannot be deleted")


__all__ = ["LedgerEntry", "LedgerKind", "LedgerImmutableError"]
