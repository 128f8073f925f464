"""Invoice & ledger engine.

Creates, pays and cancels invoices and appends the matching journal entries.
``InvoiceLedger`` never commits: it always runs inside the caller's
transaction so that an invoice and its ledger entry land together or not at
all. ``InvoiceService`` is the transactional entry point used by the API.
"""

import logging
from datetime import datetime

from snt_billing.models import (
    Charge,
    Invoice,
    InvoiceStatus,
    LedgerEntry,
    LedgerKind,
    Payment,
    utcnow,
)
from snt_billing.services.audit_service import AuditService
from snt_billing.services.context import RequestContext
from snt_billing.services.errors import (
    INVOICE_NOT_CANCELABLE,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from snt_billing.services.localizer import t
from snt_billing.services.notification_service import InAppTransport, NotificationService
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)


def invoice_number(charge_id: int, plot_id: int) -> str:
    """Deterministic invoice identity for a (charge, plot) pair."""
    return f"INV-{charge_id}-{plot_id}"


def derive_status(total_cents: int, paid_cents: int) -> InvoiceStatus:
    """Status implied by amounts: PAID when fully covered, PARTIAL when partly."""
    if paid_cents >= total_cents:
        return InvoiceStatus.PAID
    if paid_cents > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


class InvoiceLedger:
    """Invoice lifecycle plus its append-only journal."""

    def __init__(
        self,
        repo: BillingRepository,
        notifications: NotificationService | None = None,
    ):
        self.repo = repo
        self.notifications = notifications or NotificationService(InAppTransport(repo))

    def issue_invoice(
        self,
        charge: Charge,
        plot_id: int,
        amount_cents: int,
        due_date: datetime,
    ) -> Invoice:
        """Create the invoice for (charge, plot) unless it already exists.

        A new invoice starts PENDING with one ACCRUAL entry and the plot's
        owner is notified. An existing invoice is returned unchanged.

        Args:
            charge: Charge being billed
            plot_id: Plot that owes the amount
            amount_cents: Amount owed, positive
            due_date: Due date copied onto the invoice

        Returns:
            The new or pre-existing Invoice
        """
        number = invoice_number(charge.id, plot_id)
        existing = self.repo.get_invoice_by_number(charge.tenant_id, number)
        if existing is not None:
            logger.debug(f"Invoice {number} already issued; returning existing")
            return existing

        if amount_cents <= 0:
            raise ValidationError("Invoice amount must be positive")

        plot = self.repo.get_plot(charge.tenant_id, plot_id)
        if plot is None:
            raise NotFoundError(f"Plot {plot_id} not found")

        invoice = Invoice(
            tenant_id=charge.tenant_id,
            charge_id=charge.id,
            plot_id=plot_id,
            user_id=plot.owner_id,
            number=number,
            status=InvoiceStatus.PENDING,
            total_cents=amount_cents,
            paid_cents=0,
            due_date=due_date,
            issued_at=utcnow(),
        )
        self.repo.add(invoice)
        self.repo.flush()

        self._post(
            invoice, LedgerKind.ACCRUAL, amount_cents, t("ledger.accrual", title=charge.title)
        )
        self._notify_owner(charge, invoice)

        logger.info(f"Issued invoice {number} for {amount_cents} cents")
        return invoice

    def reopen_invoice(
        self,
        charge: Charge,
        invoice: Invoice,
        amount_cents: int,
        due_date: datetime,
    ) -> Invoice:
        """Bring a canceled, unpaid invoice back to PENDING and re-accrue it.

        Used when a plot re-joins a published charge. The invoice keeps its
        number, so there is still exactly one invoice per (charge, plot).
        """
        if invoice.status != InvoiceStatus.CANCELED or invoice.paid_cents > 0:
            raise ConflictError(
                f"Invoice {invoice.number} cannot be reopened", code=INVOICE_NOT_CANCELABLE
            )

        plot = self.repo.get_plot(invoice.tenant_id, invoice.plot_id)
        invoice.user_id = plot.owner_id if plot is not None else invoice.user_id
        invoice.total_cents = amount_cents
        invoice.paid_cents = 0
        invoice.due_date = due_date
        invoice.status = derive_status(amount_cents, 0)
        invoice.closed_at = None
        self.repo.flush()

        self._post(
            invoice,
            LedgerKind.ACCRUAL,
            amount_cents,
            t("ledger.accrual_reopened", title=charge.title),
        )
        self._notify_owner(charge, invoice)

        logger.info(f"Reopened invoice {invoice.number}")
        return invoice

    def apply_payment(
        self,
        invoice: Invoice,
        amount_cents: int,
        payment: Payment | None = None,
    ) -> Invoice:
        """Credit a settled payment to an invoice.

        Raises paid_cents, re-derives status (closed_at is set once PAID) and
        appends one PAYMENT entry linked to the payment.

        A payment settling on an invoice that was canceled while the payment
        was in flight reinstates the invoice: the money was collected, so the
        obligation is re-accrued before the payment is credited.

        Args:
            invoice: Invoice, locked by the caller
            amount_cents: Settled amount, positive
            payment: Originating payment record, if any

        Returns:
            The updated invoice

        Raises:
            ValidationError: amount is not positive
        """
        if amount_cents <= 0:
            raise ValidationError("Payment amount must be positive")

        if invoice.status == InvoiceStatus.CANCELED:
            logger.warning(
                f"Payment settled on canceled invoice {invoice.number}; reinstating invoice"
            )
            title = invoice.charge.title if invoice.charge is not None else invoice.number
            self._post(
                invoice,
                LedgerKind.ACCRUAL,
                invoice.total_cents,
                t("ledger.accrual_reopened", title=title),
            )

        invoice.paid_cents += amount_cents
        invoice.status = derive_status(invoice.total_cents, invoice.paid_cents)
        invoice.closed_at = utcnow() if invoice.status == InvoiceStatus.PAID else None
        self.repo.flush()

        self._post(
            invoice,
            LedgerKind.PAYMENT,
            amount_cents,
            t("ledger.payment_received"),
            payment=payment,
        )

        logger.info(
            f"Applied {amount_cents} cents to invoice {invoice.number}; "
            f"status {invoice.status.value}"
        )
        return invoice

    def cancel_invoice(self, invoice: Invoice, description: str | None = None) -> Invoice:
        """Cancel an unpaid invoice and reverse its accrual.

        Canceling an already canceled invoice returns it unchanged.

        Raises:
            ConflictError: invoice has payments (INVOICE_NOT_CANCELABLE)
        """
        if invoice.status == InvoiceStatus.CANCELED:
            logger.debug(f"Invoice {invoice.number} already canceled")
            return invoice

        if invoice.paid_cents > 0:
            logger.warning(f"Refused to cancel invoice {invoice.number}: it has payments")
            raise ConflictError(
                "Cannot cancel invoice with payments",
                code=INVOICE_NOT_CANCELABLE,
                http_status=400,
            )

        invoice.status = InvoiceStatus.CANCELED
        invoice.closed_at = utcnow()
        self.repo.flush()

        self._post(
            invoice,
            LedgerKind.ADJUSTMENT,
            -invoice.total_cents,
            description or t("ledger.invoice_canceled"),
        )

        logger.info(f"Canceled invoice {invoice.number}")
        return invoice

    def _post(
        self,
        invoice: Invoice,
        kind: LedgerKind,
        amount_cents: int,
        description: str,
        payment: Payment | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            tenant_id=invoice.tenant_id,
            plot_id=invoice.plot_id,
            user_id=(payment.created_by_id if payment is not None else None) or invoice.user_id,
            invoice_id=invoice.id,
            payment_id=payment.id if payment is not None else None,
            kind=kind,
            amount_cents=amount_cents,
            description=description,
            posted_at=utcnow(),
        )
        self.repo.add(entry)
        return entry

    def _notify_owner(self, charge: Charge, invoice: Invoice) -> None:
        if invoice.user_id is None:
            logger.debug(f"Plot {invoice.plot_id} has no owner; {invoice.number} not announced")
            return
        self.notifications.notify_invoice_issued(charge, invoice, invoice.user_id)


class InvoiceService:
    """Transactional invoice operations for the API layer."""

    def __init__(self, repo: BillingRepository, ledger: InvoiceLedger | None = None):
        self.repo = repo
        self.ledger = ledger or InvoiceLedger(repo)

    def cancel(self, ctx: RequestContext, invoice_id: int) -> Invoice:
        """Cancel an invoice directly (chairman action).

        Raises:
            NotFoundError: invoice not in the caller's tenant
            ConflictError: invoice has payments
        """
        with self.repo.transaction():
            invoice = self.repo.get_invoice(ctx.tenant_id, invoice_id, lock=True)
            if invoice is None:
                raise NotFoundError("Invoice not found")

            was_canceled = invoice.status == InvoiceStatus.CANCELED
            self.ledger.cancel_invoice(invoice)
            if not was_canceled:
                AuditService.log_for(
                    self.repo,
                    ctx,
                    "Invoice",
                    invoice.id,
                    "INVOICE_CANCELED",
                    changes={"number": invoice.number, "totalCents": invoice.total_cents},
                )
        return invoice

    def get_for_user(self, ctx: RequestContext, invoice_id: int) -> Invoice:
        """Fetch an invoice the caller may see (own plot, or any as chairman)."""
        invoice = self.repo.get_invoice(ctx.tenant_id, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        if not ctx.is_chairman and not self._belongs_to(invoice, ctx.user_id):
            raise UnauthorizedError()
        return invoice

    def list_invoices(self, ctx: RequestContext) -> list[Invoice]:
        """All tenant invoices for a chairman; invoices of owned plots otherwise."""
        if ctx.is_chairman:
            return self.repo.list_invoices(ctx.tenant_id)
        plot_ids = self.repo.plot_ids_owned_by(ctx.tenant_id, ctx.user_id)
        return self.repo.invoices_for_plots(ctx.tenant_id, plot_ids)

    def ledger_for_invoice(self, ctx: RequestContext, invoice_id: int) -> list[LedgerEntry]:
        invoice = self.get_for_user(ctx, invoice_id)
        return self.repo.ledger_for_invoice(ctx.tenant_id, invoice.id)

    @staticmethod
    def _belongs_to(invoice: Invoice, user_id: int) -> bool:
        return invoice.user_id == user_id or (
            invoice.plot is not None and invoice.plot.owner_id == user_id
        )


__all__ = ["InvoiceLedger", "InvoiceService", "derive_status", "invoice_number"]
