"""Billing API endpoints: charges, roster edits, invoices, balances."""

import logging

from fastapi import APIRouter, Depends, status

from snt_billing.api.deps import get_repository, get_request_context, require_chairman
from snt_billing.schemas.billing import (
    BalanceResponse,
    CancelInvoiceResponse,
    ChargeDetailResponse,
    ChargeListResponse,
    ChargeResponse,
    CloseChargeResponse,
    CreateChargeRequest,
    CreateChargeResponse,
    InvoiceListResponse,
    InvoiceResponse,
    LedgerEntryResponse,
    LedgerListResponse,
    ParticipantsSummary,
    PublishChargeResponse,
    ReplaceParticipantsRequest,
    ReplaceParticipantsResponse,
    SkippedUserResponse,
)
from snt_billing.services.balance_service import BalanceAggregator
from snt_billing.services.charge_service import ChargeDraft, ChargeService
from snt_billing.services.context import RequestContext
from snt_billing.services.invoice_service import InvoiceService
from snt_billing.services.participant_service import ParticipantReconciler
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/charges", response_model=ChargeListResponse)
def list_charges(
    ctx: RequestContext = Depends(get_request_context),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> ChargeListResponse:
    """List charges with collection progress.

    Chairmen see every charge of the tenant; residents see charges billed to
    their plots.
    """
    rows = ChargeService(repo).list_charges(ctx)
    return ChargeListResponse(
        items=[ChargeResponse.from_charge(charge, progress) for charge, progress in rows]
    )


@router.post(
    "/charges",
    response_model=CreateChargeResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_charge(
    payload: CreateChargeRequest,
    ctx: RequestContext = Depends(require_chairman),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> CreateChargeResponse:
    """Create a charge and, unless publishNow is false, publish it.

    Raises:
        400: no plots resolved, unknown plots
        403: caller is not a chairman
    """
    draft = ChargeDraft(
        title=payload.title,
        unit_amount_cents=payload.unit_amount_cents,
        due_date=payload.due_date,
        audience=payload.audience,
        type=payload.type,
        description=payload.description,
        plot_ids=payload.plot_ids,
        user_ids=payload.user_ids,
        include_chairman=payload.include_chairman,
    )
    result = ChargeService(repo).create(ctx, draft, publish_now=payload.publish_now)
    progress = BalanceAggregator(repo).charge_progress(ctx.tenant_id, result.charge.id)
    return CreateChargeResponse(
        charge=ChargeResponse.from_charge(result.charge, progress),
        participants=ParticipantsSummary.from_audience(result.audience),
        published=result.published,
    )


@router.get("/charges/{charge_id}", response_model=ChargeDetailResponse)
def get_charge(
    charge_id: int,
    ctx: RequestContext = Depends(require_chairman),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> ChargeDetailResponse:
    detail = ChargeService(repo).get(ctx, charge_id)
    return ChargeDetailResponse(
        charge=ChargeResponse.from_charge(detail.charge, detail.progress),
        invoices=[InvoiceResponse.from_invoice(invoice) for invoice in detail.invoices],
    )


@router.post("/charges/{charge_id}/publish", response_model=PublishChargeResponse)
def publish_charge(
    charge_id: int,
    ctx: RequestContext = Depends(require_chairman),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> PublishChargeResponse:
    """Publish a draft charge and issue its invoices.

    Raises:
        404: charge not found
        409: charge already published or closed
    """
    charge = ChargeService(repo).publish(ctx, charge_id)
    progress = BalanceAggregator(repo).charge_progress(ctx.tenant_id, charge.id)
    return PublishChargeResponse(ok=True, charge=ChargeResponse.from_charge(charge, progress))


@router.put("/charges/{charge_id}/participants", response_model=ReplaceParticipantsResponse)
def replace_participants(
    charge_id: int,
    payload: ReplaceParticipantsRequest,
    ctx: RequestContext = Depends(require_chairman),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> ReplaceParticipantsResponse:
    """Replace the charge's roster with the primary plots of the given users.

    Raises:
        404: charge not found
        409: charge closed, or a removed participant has payments
    """
    result = ParticipantReconciler(repo).replace_participants(
        ctx,
        charge_id,
        payload.user_ids,
        include_chairman=payload.include_chairman,
    )
    return ReplaceParticipantsResponse(
        added=result.added,
        removed=result.removed,
        included_users=result.included_users,
        skipped_users=[
            SkippedUserResponse(user_id=s.user_id, reason=s.reason) for s in result.skipped_users
        ],
    )


@router.post("/charges/{charge_id}/close", response_model=CloseChargeResponse)
def close_charge(
    charge_id: int,
    ctx: RequestContext = Depends(require_chairman),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> CloseChargeResponse:
    charge, already_closed = ChargeService(repo).close(ctx, charge_id)
    return CloseChargeResponse(
        ok=True,
        already_closed=already_closed,
        charge=ChargeResponse.from_charge(charge),
    )


@router.get("/balance/me", response_model=BalanceResponse)
def my_balance(
    ctx: RequestContext = Depends(get_request_context),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> BalanceResponse:
    """Totals over the caller's non-canceled invoices."""
    balance = BalanceAggregator(repo).user_balance(ctx.tenant_id, ctx.user_id)
    return BalanceResponse.from_balance(balance)


@router.get("/invoices", response_model=InvoiceListResponse)
def list_invoices(
    ctx: RequestContext = Depends(get_request_context),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> InvoiceListResponse:
    invoices = InvoiceService(repo).list_invoices(ctx)
    return InvoiceListResponse(items=[InvoiceResponse.from_invoice(i) for i in invoices])


@router.get("/invoices/{invoice_id}/ledger", response_model=LedgerListResponse)
def invoice_ledger(
    invoice_id: int,
    ctx: RequestContext = Depends(get_request_context),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> LedgerListResponse:
    """Ledger entries posted against one invoice, oldest first.

    Raises:
        403: invoice is on another resident's plot
        404: invoice not found
    """
    entries = InvoiceService(repo).ledger_for_invoice(ctx, invoice_id)
    return LedgerListResponse(items=[LedgerEntryResponse.from_entry(e) for e in entries])


@router.post("/invoices/{invoice_id}/cancel", response_model=CancelInvoiceResponse)
def cancel_invoice(
    invoice_id: int,
    ctx: RequestContext = Depends(require_chairman),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> CancelInvoiceResponse:
    """Cancel an unpaid invoice.

    Raises:
        400: invoice has payments (INVOICE_NOT_CANCELABLE)
        404: invoice not found
    """
    invoice = InvoiceService(repo).cancel(ctx, invoice_id)
    logger.info(f"Invoice {invoice.number} canceled by user {ctx.user_id}")
    return CancelInvoiceResponse(invoice=InvoiceResponse.from_invoice(invoice))


__all__ = ["router"]
