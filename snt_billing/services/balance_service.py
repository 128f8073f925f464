"""Balance aggregation over invoices.

Canceled invoices never count toward what is owed or paid.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from snt_billing.models import Invoice, InvoiceStatus
from snt_billing.services.repository import BillingRepository


@dataclass
class UserBalance:
    total_due: int = 0
    total_paid: int = 0
    outstanding: int = 0
    invoices: list[Invoice] = field(default_factory=list)


@dataclass
class ChargeProgress:
    """Collection progress of one charge, in cents and invoice counts."""

    total: int = 0
    paid: int = 0
    outstanding: int = 0
    progress_percent: int = 0
    participants_count: int = 0
    paid_count: int = 0
    partial_count: int = 0
    unpaid_count: int = 0
    canceled_count: int = 0


def progress_percent(paid_cents: int, total_cents: int) -> int:
    """Share of total collected, rounded half-up to a whole percent. 0 when total is 0."""
    if total_cents <= 0:
        return 0
    ratio = Decimal(paid_cents) * 100 / Decimal(total_cents)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize(invoices: Iterable[Invoice]) -> ChargeProgress:
    """Roll a set of invoices up into a ChargeProgress."""
    progress = ChargeProgress()
    for invoice in invoices:
        if invoice.status == InvoiceStatus.CANCELED:
            progress.canceled_count += 1
            continue
        progress.participants_count += 1
        progress.total += invoice.total_cents
        progress.paid += invoice.paid_cents
        if invoice.status == InvoiceStatus.PAID:
            progress.paid_count += 1
        elif invoice.status == InvoiceStatus.PARTIAL:
            progress.partial_count += 1
        else:
            progress.unpaid_count += 1

    progress.outstanding = max(progress.total - progress.paid, 0)
    progress.progress_percent = progress_percent(progress.paid, progress.total)
    return progress


class BalanceAggregator:
    """Read-only rollups for residents and chairmen."""

    def __init__(self, repo: BillingRepository):
        self.repo = repo

    def user_balance(self, tenant_id: int, user_id: int) -> UserBalance:
        """Totals over the non-canceled invoices of every plot the user owns.

        Args:
            tenant_id: Tenant scope
            user_id: Resident

        Returns:
            UserBalance with invoices newest first
        """
        plot_ids = self.repo.plot_ids_owned_by(tenant_id, user_id)
        invoices = self.repo.invoices_for_plots(tenant_id, plot_ids, include_canceled=False)

        total_due = sum(invoice.total_cents for invoice in invoices)
        total_paid = sum(invoice.paid_cents for invoice in invoices)
        return UserBalance(
            total_due=total_due,
            total_paid=total_paid,
            outstanding=max(total_due - total_paid, 0),
            invoices=invoices,
        )

    def charge_progress(self, tenant_id: int, charge_id: int) -> ChargeProgress:
        return summarize(self.repo.invoices_for_charge(tenant_id, charge_id))

    def progress_by_charge(
        self, tenant_id: int, charge_ids: Iterable[int]
    ) -> dict[int, ChargeProgress]:
        """ChargeProgress for many charges with one invoice query."""
        ids = list(charge_ids)
        grouped: dict[int, list[Invoice]] = {charge_id: [] for charge_id in ids}
        for invoice in self.repo.invoices_for_charges(tenant_id, ids):
            grouped.setdefault(invoice.charge_id, []).append(invoice)
        return {charge_id: summarize(invoices) for charge_id, invoices in grouped.items()}


__all__ = [
    "BalanceAggregator",
    "ChargeProgress",
    "UserBalance",
    "progress_percent",
    "summarize",
]
