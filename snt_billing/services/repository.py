"""Transactional repository shared by every billing component.

Each component receives one ``BillingRepository`` bound to the request's
session instead of reaching for a global client. All reads are tenant-scoped;
``lock=True`` issues ``SELECT ... FOR UPDATE`` so that checks made inside a
transaction stay valid until it commits.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from snt_billing.models import (
    Charge,
    ChargeLine,
    Invoice,
    InvoiceStatus,
    LedgerEntry,
    Payment,
    PaymentProvider,
    PaymentWebhookEvent,
    Plot,
    PlotOwnership,
    User,
    UserRole,
)
from snt_billing.services.errors import BillingError, InternalError

logger = logging.getLogger(__name__)


def _locked(stmt):
    """FOR UPDATE select that also overwrites rows already loaded in the session."""
    return stmt.with_for_update().execution_options(populate_existing=True)


class DuplicateKeyError(InternalError):
    """A unique constraint rejected the write; the transaction was rolled back.

    Callers that rely on unique keys for idempotency catch this and re-read
    the row that won.
    """

    def __init__(self, message: str = "Duplicate key"):
        super().__init__(message, code="DUPLICATE_KEY")


class BillingRepository:
    """Typed data access for the billing core over one SQLAlchemy session."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    # Transactions -------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["BillingRepository"]:
        """Run a block as one atomic unit: commit on success, roll back on any error.

        Raises:
            DuplicateKeyError: a unique constraint failed
            InternalError: any other database failure
        """
        try:
            yield self
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Transaction rolled back on integrity error: %s", e.orig)
            raise DuplicateKeyError(str(e.orig)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Transaction rolled back: %s", e, exc_info=True)
            raise InternalError("Transaction failed and was rolled back") from e
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Nested transaction whose failure does not abort the outer one."""
        with self.db.begin_nested():
            yield

    def add(self, obj) -> None:
        self.db.add(obj)

    def delete(self, obj) -> None:
        self.db.delete(obj)

    def flush(self) -> None:
        self.db.flush()

    # Users and plots ----------------------------------------------------

    def get_users(self, tenant_id: int, user_ids: Iterable[int]) -> list[User]:
        ids = list(user_ids)
        if not ids:
            return []
        stmt = select(User).where(User.tenant_id == tenant_id, User.id.in_(ids))
        return list(self.db.scalars(stmt))

    def list_active_user_ids(self, tenant_id: int, roles: Iterable[UserRole]) -> list[int]:
        stmt = (
            select(User.id)
            .where(
                User.tenant_id == tenant_id,
                User.is_active.is_(True),
                User.role.in_(list(roles)),
            )
            .order_by(User.id)
        )
        return list(self.db.scalars(stmt))

    def get_plot(self, tenant_id: int, plot_id: int) -> Plot | None:
        stmt = select(Plot).where(Plot.tenant_id == tenant_id, Plot.id == plot_id)
        return self.db.scalars(stmt).first()

    def list_plot_ids(self, tenant_id: int) -> list[int]:
        stmt = select(Plot.id).where(Plot.tenant_id == tenant_id).order_by(Plot.id)
        return list(self.db.scalars(stmt))

    def existing_plot_ids(self, tenant_id: int, plot_ids: Iterable[int]) -> set[int]:
        ids = list(plot_ids)
        if not ids:
            return set()
        stmt = select(Plot.id).where(Plot.tenant_id == tenant_id, Plot.id.in_(ids))
        return set(self.db.scalars(stmt))

    def plot_ids_owned_by(self, tenant_id: int, user_id: int) -> list[int]:
        stmt = select(Plot.id).where(Plot.tenant_id == tenant_id, Plot.owner_id == user_id)
        return list(self.db.scalars(stmt))

    def active_primary_memberships(
        self, tenant_id: int, user_ids: Iterable[int]
    ) -> list[PlotOwnership]:
        ids = list(user_ids)
        if not ids:
            return []
        stmt = (
            select(PlotOwnership)
            .where(
                PlotOwnership.tenant_id == tenant_id,
                PlotOwnership.user_id.in_(ids),
                PlotOwnership.to_date.is_(None),
                PlotOwnership.is_primary.is_(True),
            )
            .order_by(PlotOwnership.from_date.desc())
        )
        return list(self.db.scalars(stmt))

    # Charges ------------------------------------------------------------

    def get_charge(self, tenant_id: int, charge_id: int, lock: bool = False) -> Charge | None:
        stmt = select(Charge).where(Charge.tenant_id == tenant_id, Charge.id == charge_id)
        if lock:
            stmt = _locked(stmt)
        return self.db.scalars(stmt).first()

    def list_charges(self, tenant_id: int) -> list[Charge]:
        stmt = (
            select(Charge)
            .where(Charge.tenant_id == tenant_id)
            .order_by(Charge.created_at.desc(), Charge.id.desc())
        )
        return list(self.db.scalars(stmt))

    def charge_lines(self, charge_id: int) -> list[ChargeLine]:
        stmt = select(ChargeLine).where(ChargeLine.charge_id == charge_id).order_by(ChargeLine.id)
        return list(self.db.scalars(stmt))

    # Invoices -----------------------------------------------------------

    def get_invoice(self, tenant_id: int, invoice_id: int, lock: bool = False) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.tenant_id == tenant_id, Invoice.id == invoice_id)
        if lock:
            stmt = _locked(stmt)
        return self.db.scalars(stmt).first()

    def get_invoice_by_number(
        self, tenant_id: int, number: str, lock: bool = False
    ) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.tenant_id == tenant_id, Invoice.number == number)
        if lock:
            stmt = _locked(stmt)
        return self.db.scalars(stmt).first()

    def invoices_for_charge(
        self, tenant_id: int, charge_id: int, lock: bool = False
    ) -> list[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.tenant_id == tenant_id, Invoice.charge_id == charge_id)
            .order_by(Invoice.issued_at.desc(), Invoice.id.desc())
        )
        if lock:
            stmt = _locked(stmt)
        return list(self.db.scalars(stmt))

    def invoices_for_charges(self, tenant_id: int, charge_ids: Iterable[int]) -> list[Invoice]:
        ids = list(charge_ids)
        if not ids:
            return []
        stmt = select(Invoice).where(Invoice.tenant_id == tenant_id, Invoice.charge_id.in_(ids))
        return list(self.db.scalars(stmt))

    def invoices_for_plots(
        self, tenant_id: int, plot_ids: Iterable[int], include_canceled: bool = True
    ) -> list[Invoice]:
        ids = list(plot_ids)
        if not ids:
            return []
        stmt = select(Invoice).where(Invoice.tenant_id == tenant_id, Invoice.plot_id.in_(ids))
        if not include_canceled:
            stmt = stmt.where(Invoice.status != InvoiceStatus.CANCELED)
        stmt = stmt.order_by(Invoice.issued_at.desc(), Invoice.id.desc())
        return list(self.db.scalars(stmt))

    def list_invoices(self, tenant_id: int) -> list[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.tenant_id == tenant_id)
            .order_by(Invoice.issued_at.desc(), Invoice.id.desc())
        )
        return list(self.db.scalars(stmt))

    def ledger_for_invoice(self, tenant_id: int, invoice_id: int) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.tenant_id == tenant_id, LedgerEntry.invoice_id == invoice_id)
            .order_by(LedgerEntry.id)
        )
        return list(self.db.scalars(stmt))

    # Payments -----------------------------------------------------------

    def get_payment(self, tenant_id: int, payment_id: str, lock: bool = False) -> Payment | None:
        stmt = select(Payment).where(Payment.tenant_id == tenant_id, Payment.id == payment_id)
        if lock:
            stmt = _locked(stmt)
        return self.db.scalars(stmt).first()

    def find_payment_by_key(self, tenant_id: int, idempotency_key: str) -> Payment | None:
        stmt = select(Payment).where(
            Payment.tenant_id == tenant_id,
            Payment.idempotency_key == idempotency_key,
        )
        return self.db.scalars(stmt).first()

    def list_payments(self, tenant_id: int) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.tenant_id == tenant_id)
            .order_by(Payment.created_at.desc())
        )
        return list(self.db.scalars(stmt))

    def find_webhook_event(
        self, provider: PaymentProvider, event_id: str
    ) -> PaymentWebhookEvent | None:
        stmt = select(PaymentWebhookEvent).where(
            PaymentWebhookEvent.provider == provider,
            PaymentWebhookEvent.event_id == event_id,
        )
        return self.db.scalars(stmt).first()


__all__ = ["BillingRepository", "DuplicateKeyError"]
