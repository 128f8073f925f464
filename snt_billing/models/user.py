"""User ORM model with tenant-scoped role."""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel


class UserRole(str, Enum):
    """Portal role. Only the chairman manages charges."""

    USER = "USER"
    CHAIRMAN = "CHAIRMAN"


class User(Base, BaseModel):
    """A resident or the chairman of one tenant.

    Identity and sessions live in the auth service; this table is the
    read model the billing core needs: role, activity flag and the plots
    the user owns.
    """

    __tablename__ = "users"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="userrole"),
        nullable=False,
        default=UserRole.USER,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Inactive users are skipped by audience resolution and get no notifications",
    )

    # Relationships
    plots: Mapped[list["Plot"]] = relationship(  # noqa: F821
        "Plot",
        back_populates="owner",
        foreign_keys="Plot.owner_id",
    )

    __table_args__ = (
        Index("idx_user_tenant_active", "tenant_id", "is_active"),
        Index("idx_user_tenant_phone", "tenant_id", "phone", unique=True),
    )

    @property
    def is_chairman(self) -> bool:
        return self.role == UserRole.CHAIRMAN

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, tenant_id={self.tenant_id}, name={self.name!r}, "
            f"role={self.role}, is_active={self.is_active})>"
        )


__all__ = ["User", "UserRole"]
