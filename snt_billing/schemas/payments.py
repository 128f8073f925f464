"""Payment API schemas."""

from datetime import datetime

from pydantic import Field

from snt_billing.models import Payment, PaymentProvider, PaymentStatus
from snt_billing.schemas import CamelModel


class InitiatePaymentRequest(CamelModel):
    invoice_id: int
    idempotency_key: str | None = Field(default=None, max_length=128)


class WebhookRequest(CamelModel):
    """Provider callback body. ``status`` is free-form; unknown values mean PENDING."""

    event_id: str = Field(min_length=1, max_length=128)
    payment_id: str = Field(min_length=1)
    tenant_id: int
    status: str


class PaymentResponse(CamelModel):
    id: str
    invoice_id: int
    created_by_id: int | None = None
    provider: PaymentProvider
    status: PaymentStatus
    amount_cents: int
    idempotency_key: str
    provider_payment_id: str | None = None
    external_url: str | None = None
    created_at: datetime
    settled_at: datetime | None = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            invoice_id=payment.invoice_id,
            created_by_id=payment.created_by_id,
            provider=payment.provider,
            status=payment.status,
            amount_cents=payment.amount_cents,
            idempotency_key=payment.idempotency_key,
            provider_payment_id=payment.provider_payment_id,
            external_url=payment.external_url,
            created_at=payment.created_at,
            settled_at=payment.settled_at,
        )


class InitiatePaymentResponse(CamelModel):
    payment: PaymentResponse
    checkout_url: str | None = None
    reused: bool = False


class WebhookResponse(CamelModel):
    ok: bool = True
    duplicate: bool = False


class PaymentListResponse(CamelModel):
    items: list[PaymentResponse]


__all__ = [
    "InitiatePaymentRequest",
    "InitiatePaymentResponse",
    "PaymentListResponse",
    "PaymentResponse",
    "WebhookRequest",
    "WebhookResponse",
]
