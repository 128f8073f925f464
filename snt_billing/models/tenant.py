"""Tenant ORM model: the isolation boundary for every billing entity."""

from enum import Enum

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from snt_billing.models import Base, BaseModel


class TenantStatus(str, Enum):
    """Lifecycle of a tenant (one SNT community)."""

    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class Tenant(Base, BaseModel):
    """One community. Every query and unique constraint is scoped by it."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="URL-safe tenant identifier",
    )
    status: Mapped[TenantStatus] = mapped_column(
        SQLEnum(TenantStatus, name="tenantstatus"),
        nullable=False,
        default=TenantStatus.ACTIVE,
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug={self.slug!r}, status={self.status})>"


__all__ = ["Tenant", "TenantStatus"]
