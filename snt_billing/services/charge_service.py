"""Charge lifecycle: draft, publish, close.

A charge moves DRAFT -> PUBLISHED -> CLOSED and never back. Publishing turns
every charge line into an invoice inside the same transaction that flips the
status, so a charge is never observed PUBLISHED with some invoices missing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from snt_billing.models import Charge, ChargeLine, ChargeStatus, ChargeType, Invoice, utcnow
from snt_billing.services.audience_service import Audience, AudienceResolver, AudienceResult
from snt_billing.services.audit_service import AuditService
from snt_billing.services.balance_service import BalanceAggregator, ChargeProgress
from snt_billing.services.context import RequestContext
from snt_billing.services.errors import (
    CHARGE_ALREADY_PUBLISHED,
    CHARGE_NOT_DRAFT,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from snt_billing.services.invoice_service import InvoiceLedger
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)


@dataclass
class ChargeDraft:
    """Everything needed to create a charge."""

    title: str
    unit_amount_cents: int
    due_date: datetime
    audience: Audience = Audience.PLOTS
    type: ChargeType = ChargeType.ONE_TIME
    description: str | None = None
    plot_ids: list[int] | None = None
    user_ids: list[int] | None = None
    include_chairman: bool = False


@dataclass
class CreateChargeResult:
    charge: Charge
    audience: AudienceResult
    published: bool


@dataclass
class ChargeDetail:
    """A charge with its rollup and invoices, for the detail view."""

    charge: Charge
    progress: ChargeProgress
    invoices: list[Invoice] = field(default_factory=list)


class ChargeService:
    """Service for charge lifecycle operations."""

    def __init__(
        self,
        repo: BillingRepository,
        ledger: InvoiceLedger | None = None,
        resolver: AudienceResolver | None = None,
        balances: BalanceAggregator | None = None,
    ):
        """Initialize with a repository; collaborators default to ones bound to it."""
        self.repo = repo
        self.ledger = ledger or InvoiceLedger(repo)
        self.resolver = resolver or AudienceResolver(repo)
        self.balances = balances or BalanceAggregator(repo)

    def create(
        self, ctx: RequestContext, draft: ChargeDraft, publish_now: bool = True
    ) -> CreateChargeResult:
        """Create a charge with one line per resolved plot.

        Args:
            ctx: Caller (chairman)
            draft: Charge attributes and audience
            publish_now: Publish in the same transaction (default True)

        Returns:
            CreateChargeResult with the charge and the audience breakdown

        Raises:
            ValidationError: bad amount/title, or the audience resolved to no plots
        """
        title = (draft.title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if draft.unit_amount_cents <= 0:
            raise ValidationError("Amount must be positive")

        with self.repo.transaction():
            audience = self.resolver.resolve(
                ctx.tenant_id,
                draft.audience,
                plot_ids=draft.plot_ids,
                user_ids=draft.user_ids,
                include_chairman=draft.include_chairman,
            )
            if not audience.plot_ids:
                raise ValidationError("No plots found for charge")

            charge = Charge(
                tenant_id=ctx.tenant_id,
                title=title,
                description=draft.description,
                type=draft.type,
                status=ChargeStatus.DRAFT,
                amount_cents=draft.unit_amount_cents,
                due_date=draft.due_date,
                created_by_id=ctx.user_id,
            )
            self.repo.add(charge)
            self.repo.flush()

            for plot_id in audience.plot_ids:
                self.repo.add(
                    ChargeLine(
                        charge_id=charge.id,
                        plot_id=plot_id,
                        amount_cents=draft.unit_amount_cents,
                    )
                )
            self.repo.flush()

            AuditService.log_for(
                self.repo,
                ctx,
                "Charge",
                charge.id,
                "CHARGE_CREATED",
                changes={
                    "title": title,
                    "unitAmountCents": draft.unit_amount_cents,
                    "plots": len(audience.plot_ids),
                    "skippedUsers": len(audience.skipped_users),
                },
            )

            if publish_now:
                self._publish(ctx, charge)

        logger.info(
            f"Created charge {charge.id} '{title}' in tenant {ctx.tenant_id} "
            f"for {len(audience.plot_ids)} plots (published={publish_now})"
        )
        return CreateChargeResult(charge=charge, audience=audience, published=publish_now)

    def publish(self, ctx: RequestContext, charge_id: int) -> Charge:
        """Publish a DRAFT charge and issue its invoices.

        Raises:
            NotFoundError: charge not in tenant
            ConflictError: charge already PUBLISHED (CHARGE_ALREADY_PUBLISHED)
                or CLOSED (CHARGE_NOT_DRAFT)
        """
        with self.repo.transaction():
            charge = self._get_locked(ctx, charge_id)
            self._publish(ctx, charge)

        logger.info(f"Published charge {charge.id} in tenant {ctx.tenant_id}")
        return charge

    def close(self, ctx: RequestContext, charge_id: int) -> tuple[Charge, bool]:
        """Close a charge. Closing an already closed charge is a no-op.

        Returns:
            (charge, already_closed)
        """
        with self.repo.transaction():
            charge = self._get_locked(ctx, charge_id)
            if charge.status == ChargeStatus.CLOSED:
                logger.debug(f"Charge {charge.id} already closed")
                return charge, True

            previous = charge.status
            charge.status = ChargeStatus.CLOSED
            charge.closed_at = utcnow()
            AuditService.log_for(
                self.repo,
                ctx,
                "Charge",
                charge.id,
                "CHARGE_CLOSED",
                changes={"from": previous.value},
            )

        logger.info(f"Closed charge {charge.id} in tenant {ctx.tenant_id}")
        return charge, False

    def get(self, ctx: RequestContext, charge_id: int) -> ChargeDetail:
        """Charge with progress and invoices (chairman view)."""
        if not ctx.is_chairman:
            raise UnauthorizedError()
        charge = self.repo.get_charge(ctx.tenant_id, charge_id)
        if charge is None:
            raise NotFoundError("Charge not found")
        invoices = self.repo.invoices_for_charge(ctx.tenant_id, charge.id)
        return ChargeDetail(
            charge=charge,
            progress=self.balances.charge_progress(ctx.tenant_id, charge.id),
            invoices=invoices,
        )

    def list_charges(self, ctx: RequestContext) -> list[tuple[Charge, ChargeProgress]]:
        """Charges with progress, newest first.

        Chairmen see every charge; residents only charges billed to plots they own.
        """
        charges = self.repo.list_charges(ctx.tenant_id)
        if not ctx.is_chairman:
            plot_ids = self.repo.plot_ids_owned_by(ctx.tenant_id, ctx.user_id)
            invoices = self.repo.invoices_for_plots(ctx.tenant_id, plot_ids)
            visible = {invoice.charge_id for invoice in invoices}
            charges = [charge for charge in charges if charge.id in visible]

        progress = self.balances.progress_by_charge(ctx.tenant_id, [c.id for c in charges])
        return [(charge, progress[charge.id]) for charge in charges]

    def _get_locked(self, ctx: RequestContext, charge_id: int) -> Charge:
        charge = self.repo.get_charge(ctx.tenant_id, charge_id, lock=True)
        if charge is None:
            raise NotFoundError("Charge not found")
        return charge

    def _publish(self, ctx: RequestContext, charge: Charge) -> None:
        if charge.status != ChargeStatus.DRAFT:
            logger.warning(f"Refused to publish charge {charge.id}: status {charge.status.value}")
            if charge.status == ChargeStatus.PUBLISHED:
                raise ConflictError("Charge already published", code=CHARGE_ALREADY_PUBLISHED)
            raise ConflictError(
                f"Charge is {charge.status.value}, only DRAFT can be published",
                code=CHARGE_NOT_DRAFT,
            )

        charge.status = ChargeStatus.PUBLISHED
        charge.published_at = utcnow()

        lines = self.repo.charge_lines(charge.id)
        for line in lines:
            self.ledger.issue_invoice(charge, line.plot_id, line.amount_cents, charge.due_date)

        AuditService.log_for(
            self.repo,
            ctx,
            "Charge",
            charge.id,
            "CHARGE_PUBLISHED",
            changes={"invoices": len(lines)},
        )


__all__ = ["ChargeDetail", "ChargeDraft", "ChargeService", "CreateChargeResult"]
