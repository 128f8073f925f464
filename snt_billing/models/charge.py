"""Charge and ChargeLine ORM models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel, utcnow


class ChargeType(str, Enum):
    """Kind of billing campaign."""

    ONE_TIME = "ONE_TIME"
    MONTHLY = "MONTHLY"
    TARGETED = "TARGETED"


class ChargeStatus(str, Enum):
    """Charge state machine: DRAFT -> PUBLISHED -> CLOSED, never backwards."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


class Charge(Base, BaseModel):
    """A billing campaign: collect ``amount_cents`` from each targeted plot by ``due_date``."""

    __tablename__ = "charges"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[ChargeType] = mapped_column(
        SQLEnum(ChargeType, name="chargetype"),
        nullable=False,
        default=ChargeType.ONE_TIME,
    )
    status: Mapped[ChargeStatus] = mapped_column(
        SQLEnum(ChargeStatus, name="chargestatus"),
        nullable=False,
        default=ChargeStatus.DRAFT,
    )
    amount_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Unit amount charged to every participating plot",
    )
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    lines: Mapped[list["ChargeLine"]] = relationship(
        "ChargeLine",
        back_populates="charge",
        order_by="ChargeLine.id",
    )

    __table_args__ = (Index("idx_charge_tenant_status_due", "tenant_id", "status", "due_date"),)

    def __repr__(self) -> str:
        return (
            f"<Charge(id={self.id}, tenant_id={self.tenant_id}, title={self.title!r}, "
            f"status={self.status}, amount_cents={self.amount_cents})>"
        )


class ChargeLine(Base):
    """Target amount for one plot under one charge."""

    __tablename__ = "charge_lines"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    charge_id: Mapped[int] = mapped_column(ForeignKey("charges.id"), nullable=False)
    plot_id: Mapped[int] = mapped_column(ForeignKey("plots.id"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    charge: Mapped["Charge"] = relationship("Charge", back_populates="lines")
    plot: Mapped["Plot"] = relationship("Plot")  # noqa: F821

    __table_args__ = (Index("uq_charge_line_charge_plot", "charge_id", "plot_id", unique=True),)

    def __repr__(self) -> str:
        return (
            f"<ChargeLine(charge_id={self.charge_id}, plot_id={self.plot_id}, "
            f"amount_cents={self.amount_cents})>"
        )


__all__ = ["Charge", "ChargeLine", "ChargeStatus", "ChargeType"]
