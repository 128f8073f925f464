"""Payment API endpoints: initiation, provider webhook, status."""

import logging

from fastapi import APIRouter, Depends, Header, Response, status

from snt_billing.api.deps import get_repository, get_request_context, require_chairman
from snt_billing.schemas.payments import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentListResponse,
    PaymentResponse,
    WebhookRequest,
    WebhookResponse,
)
from snt_billing.services.context import RequestContext
from snt_billing.services.payment_gateway import PaymentGateway, WebhookEvent
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/initiate",
    response_model=InitiatePaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
def initiate_payment(
    payload: InitiatePaymentRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> InitiatePaymentResponse:
    """Start a payment for an invoice.

    Returns 201 with the new payment, or 200 with the original one when the
    idempotency key was already used.

    Raises:
        403: invoice belongs to another user
        404: invoice not found
        409: invoice canceled or already paid
    """
    result = PaymentGateway(repo).initiate(ctx, payload.invoice_id, payload.idempotency_key)
    if result.reused:
        response.status_code = status.HTTP_200_OK
    return InitiatePaymentResponse(
        payment=PaymentResponse.from_payment(result.payment),
        checkout_url=result.checkout_url,
        reused=result.reused,
    )


@router.post("/webhook", response_model=WebhookResponse)
def payment_webhook(
    payload: WebhookRequest,
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
    signature: str | None = Header(None, alias="X-Payment-Signature"),  # noqa: B008
) -> WebhookResponse:
    """Provider callback. Redeliveries of the same eventId are acknowledged as duplicates.

    Raises:
        403: bad signature (production only)
        404: payment not found in tenant
    """
    gateway = PaymentGateway(repo)
    gateway.verify_signature(signature)

    event = WebhookEvent.from_payload(payload.model_dump(by_alias=True))
    result = gateway.apply_webhook(event, payload.model_dump(by_alias=True))
    return WebhookResponse(ok=True, duplicate=result.duplicate)


@router.get("/{payment_id}/status", response_model=PaymentResponse)
def payment_status(
    payment_id: str,
    ctx: RequestContext = Depends(get_request_context),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> PaymentResponse:
    payment = PaymentGateway(repo).get_payment(ctx, payment_id)
    return PaymentResponse.from_payment(payment)


@router.get("", response_model=PaymentListResponse)
def list_payments(
    ctx: RequestContext = Depends(require_chairman),  # noqa: B008
    repo: BillingRepository = Depends(get_repository),  # noqa: B008
) -> PaymentListResponse:
    payments = PaymentGateway(repo).list_payments(ctx)
    return PaymentListResponse(items=[PaymentResponse.from_payment(p) for p in payments])


__all__ = ["router"]
