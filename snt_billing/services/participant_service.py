"""Participant reconciliation: replace the roster of a charge.

The whole diff runs in one transaction that holds row locks on the charge and
on its invoices. The "has this invoice been paid" check is made under those
locks, so a payment settling concurrently either lands first (and the edit is
refused) or waits until the edit commits.
"""

import logging
from dataclasses import dataclass, field

from snt_billing.models import ChargeLine, ChargeStatus, InvoiceStatus
from snt_billing.services.audience_service import Audience, AudienceResolver, SkippedUser
from snt_billing.services.audit_service import AuditService
from snt_billing.services.context import RequestContext
from snt_billing.services.errors import (
    CANNOT_REMOVE_PAID_PARTICIPANT,
    CHARGE_NOT_EDITABLE,
    ConflictError,
    NotFoundError,
)
from snt_billing.services.invoice_service import InvoiceLedger
from snt_billing.services.localizer import t
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    added: int = 0
    removed: int = 0
    skipped_users: list[SkippedUser] = field(default_factory=list)
    included_users: list[int] = field(default_factory=list)


class ParticipantReconciler:
    """Brings a charge's plots in line with a new list of users."""

    def __init__(
        self,
        repo: BillingRepository,
        ledger: InvoiceLedger | None = None,
        resolver: AudienceResolver | None = None,
    ):
        self.repo = repo
        self.ledger = ledger or InvoiceLedger(repo)
        self.resolver = resolver or AudienceResolver(repo)

    def replace_participants(
        self,
        ctx: RequestContext,
        charge_id: int,
        user_ids: list[int],
        include_chairman: bool = False,
    ) -> ReconcileResult:
        """Make the charge bill exactly the primary plots of ``user_ids``.

        Removed plots get their invoice canceled (ADJUSTMENT entry) and their
        line dropped. Added plots get a line and, on a published charge, an
        invoice: newly issued, or the earlier canceled one reopened.

        Args:
            ctx: Caller (chairman)
            charge_id: Charge to edit
            user_ids: Complete desired roster
            include_chairman: Let chairmen be billed too

        Returns:
            ReconcileResult

        Raises:
            NotFoundError: charge not in tenant
            ConflictError: charge is CLOSED (CHARGE_NOT_EDITABLE), or a removed
                plot already has payments (CANNOT_REMOVE_PAID_PARTICIPANT)
        """
        with self.repo.transaction():
            charge = self.repo.get_charge(ctx.tenant_id, charge_id, lock=True)
            if charge is None:
                raise NotFoundError("Charge not found")
            if charge.status == ChargeStatus.CLOSED:
                logger.warning(f"Refused roster edit on closed charge {charge.id}")
                raise ConflictError("Charge is closed", code=CHARGE_NOT_EDITABLE)

            audience = self.resolver.resolve(
                ctx.tenant_id,
                Audience.USERS_PRIMARY_PLOTS,
                user_ids=user_ids,
                include_chairman=include_chairman,
            )
            desired = audience.plot_ids

            lines = {line.plot_id: line for line in self.repo.charge_lines(charge.id)}
            invoices = {
                invoice.plot_id: invoice
                for invoice in self.repo.invoices_for_charge(ctx.tenant_id, charge.id, lock=True)
            }
            current = {plot_id for plot_id in lines if plot_id not in invoices}
            current |= {
                plot_id
                for plot_id, invoice in invoices.items()
                if invoice.status != InvoiceStatus.CANCELED
            }

            to_add = [plot_id for plot_id in desired if plot_id not in current]
            to_remove = sorted(current - set(desired))

            paid = [
                plot_id
                for plot_id in to_remove
                if plot_id in invoices and invoices[plot_id].paid_cents > 0
            ]
            if paid:
                logger.warning(
                    f"Refused roster edit on charge {charge.id}: plots {paid} have payments"
                )
                raise ConflictError(
                    "Cannot remove participant with payments",
                    code=CANNOT_REMOVE_PAID_PARTICIPANT,
                )

            description = t("ledger.participant_removed", title=charge.title)
            for plot_id in to_remove:
                invoice = invoices.get(plot_id)
                if invoice is not None:
                    self.ledger.cancel_invoice(invoice, description=description)
                if plot_id in lines:
                    self.repo.delete(lines[plot_id])

            # Lines left behind by earlier removals whose invoice stayed canceled
            for plot_id, line in lines.items():
                if plot_id not in current and plot_id not in desired:
                    self.repo.delete(line)

            for plot_id in to_add:
                line = lines.get(plot_id)
                if line is None:
                    self.repo.add(
                        ChargeLine(
                            charge_id=charge.id,
                            plot_id=plot_id,
                            amount_cents=charge.amount_cents,
                        )
                    )
                else:
                    line.amount_cents = charge.amount_cents

                if charge.status != ChargeStatus.PUBLISHED:
                    continue
                invoice = invoices.get(plot_id)
                if invoice is None:
                    self.ledger.issue_invoice(
                        charge, plot_id, charge.amount_cents, charge.due_date
                    )
                else:
                    self.ledger.reopen_invoice(
                        charge, invoice, charge.amount_cents, charge.due_date
                    )
            self.repo.flush()

            AuditService.log_for(
                self.repo,
                ctx,
                "Charge",
                charge.id,
                "CHARGE_PARTICIPANTS_UPDATED",
                changes={
                    "added": len(to_add),
                    "removed": len(to_remove),
                    "skippedUsers": len(audience.skipped_users),
                },
            )

        logger.info(
            f"Updated participants of charge {charge_id}: "
            f"+{len(to_add)} -{len(to_remove)}, {len(audience.skipped_users)} skipped"
        )
        return ReconcileResult(
            added=len(to_add),
            removed=len(to_remove),
            skipped_users=audience.skipped_users,
            included_users=audience.included_users,
        )


__all__ = ["ParticipantReconciler", "ReconcileResult"]
