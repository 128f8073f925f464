"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


def utcnow() -> datetime:
    """Timezone-aware current time used for every business timestamp."""
    return datetime.now(timezone.utc)


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from snt_billing.models.tenant import Tenant, TenantStatus  # noqa: E402
from snt_billing.models.user import User, UserRole  # noqa: E402
from snt_billing.models.plot import Plot, PlotOwnership  # noqa: E402
from snt_billing.models.charge import Charge, ChargeLine, ChargeStatus, ChargeType  # noqa: E402
from snt_billing.models.invoice import Invoice, InvoiceStatus  # noqa: E402
from snt_billing.models.payment import (  # noqa: E402
    Payment,
    PaymentProvider,
    PaymentStatus,
    PaymentWebhookEvent,
)
from snt_billing.models.ledger_entry import LedgerEntry, LedgerKind  # noqa: E402
from snt_billing.models.notification import InAppNotification, NotificationType  # noqa: E402
from snt_billing.models.audit_log import AuditLog  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "Tenant",
    "TenantStatus",
    "User",
    "UserRole",
    "Plot",
    "PlotOwnership",
    "Charge",
    "ChargeLine",
    "ChargeStatus",
    "ChargeType",
    "Invoice",
    "InvoiceStatus",
    "Payment",
    "PaymentProvider",
    "PaymentStatus",
    "PaymentWebhookEvent",
    "LedgerEntry",
    "LedgerKind",
    "InAppNotification",
    "NotificationType",
    "AuditLog",
]
