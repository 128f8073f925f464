"""Plot and PlotOwnership ORM models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel, utcnow


class Plot(Base, BaseModel):
    """A billable land plot.

    ``owner_id`` is a cached pointer to the current primary owner, derived from
    PlotOwnership and never authoritative for audience resolution.
    """

    __tablename__ = "plots"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Plot number as painted on the gate, unique within a tenant",
    )
    area: Mapped[float | None] = mapped_column(Float, nullable=True, comment="Area in sotkas")
    owner_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )

    # Relationships
    owner: Mapped["User | None"] = relationship(  # noqa: F821
        "User",
        back_populates="plots",
        foreign_keys=[owner_id],
    )
    memberships: Mapped[list["PlotOwnership"]] = relationship(
        "PlotOwnership",
        back_populates="plot",
    )

    __table_args__ = (
        Index("idx_plot_tenant_number", "tenant_id", "number", unique=True),
        Index("idx_plot_tenant_owner", "tenant_id", "owner_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Plot(id={self.id}, tenant_id={self.tenant_id}, number={self.number!r}, "
            f"owner_id={self.owner_id})>"
        )


class PlotOwnership(Base, BaseModel):
    """Time-ranged membership of a user in a plot.

    ``to_date`` is null while the membership is active. A user has at most one
    active primary membership; a (plot, user) pair has at most one active
    membership.
    """

    __tablename__ = "plot_ownerships"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    plot_id: Mapped[int] = mapped_column(ForeignKey("plots.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    from_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    to_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    plot: Mapped["Plot"] = relationship("Plot", back_populates="memberships")
    user: Mapped["User"] = relationship("User")  # noqa: F821

    __table_args__ = (
        Index("idx_ownership_tenant_user", "tenant_id", "user_id"),
        Index(
            "uq_ownership_one_primary_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_primary = true AND to_date IS NULL"),
            sqlite_where=text("is_primary = 1 AND to_date IS NULL"),
        ),
        Index(
            "uq_ownership_one_active_per_pair",
            "plot_id",
            "user_id",
            unique=True,
            postgresql_where=text("to_date IS NULL"),
            sqlite_where=text("to_date IS NULL"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.to_date is None

    def __repr__(self) -> str:
        return (
            f"<PlotOwnership(id={self.id}, plot_id={self.plot_id}, user_id={self.user_id}, "
            f"is_primary={self.is_primary}, to_date={self.to_date})>"
        )


__all__ = ["Plot", "PlotOwnership"]
