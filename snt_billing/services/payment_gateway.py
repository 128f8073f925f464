"""Payment gateway adapter: initiate payments and apply provider webhooks.

Both entry points are idempotent. Initiation is keyed by
(tenant, idempotency key); webhooks by (provider, event id). When two
requests race on the same key, the unique index decides the winner and the
loser re-reads and returns it instead of failing.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from snt_billing.config import settings
from snt_billing.models import (
    InvoiceStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
    PaymentWebhookEvent,
    utcnow,
)
from snt_billing.services.audit_service import AuditService
from snt_billing.services.context import RequestContext
from snt_billing.services.errors import (
    INVOICE_ALREADY_PAID,
    INVOICE_CANCELED,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from snt_billing.services.invoice_service import InvoiceLedger
from snt_billing.services.repository import BillingRepository, DuplicateKeyError

logger = logging.getLogger(__name__)

IDEMPOTENCY_KEY_REUSED = "IDEMPOTENCY_KEY_REUSED"


@dataclass
class InitiateResult:
    payment: Payment
    checkout_url: str | None
    reused: bool = False


@dataclass(frozen=True)
class WebhookEvent:
    """Provider callback, with the status already normalized."""

    event_id: str
    payment_id: str
    tenant_id: int
    status: PaymentStatus

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WebhookEvent":
        return cls(
            event_id=str(payload["eventId"]),
            payment_id=str(payload["paymentId"]),
            tenant_id=int(payload["tenantId"]),
            status=PaymentStatus.from_provider(str(payload.get("status", ""))),
        )


@dataclass
class WebhookResult:
    duplicate: bool
    payment: Payment | None = None


def _provider_payment_id() -> str:
    return f"tb_{int(utcnow().timestamp() * 1000)}_{secrets.token_hex(4)}"


class PaymentGateway:
    """Adapter between invoices and the external payment provider."""

    def __init__(
        self,
        repo: BillingRepository,
        ledger: InvoiceLedger | None = None,
        provider: PaymentProvider | None = None,
    ):
        self.repo = repo
        self.ledger = ledger or InvoiceLedger(repo)
        self.provider = provider or PaymentProvider(settings.payment_provider)

    def initiate(
        self,
        ctx: RequestContext,
        invoice_id: int,
        idempotency_key: str | None = None,
    ) -> InitiateResult:
        """Start (or replay) a payment for an invoice's outstanding amount.

        Args:
            ctx: Caller; must own the invoice's plot or be a chairman
            invoice_id: Invoice to pay
            idempotency_key: Client retry key; a random one is generated if omitted

        Returns:
            InitiateResult; ``reused`` is True when the key was seen before

        Raises:
            NotFoundError: invoice not in tenant
            UnauthorizedError: caller is neither owner nor chairman
            ConflictError: invoice canceled or already paid, or key reused for
                another invoice
        """
        key = (idempotency_key or "").strip() or secrets.token_hex(16)

        invoice = self.repo.get_invoice(ctx.tenant_id, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")

        owns = invoice.user_id == ctx.user_id or (
            invoice.plot is not None and invoice.plot.owner_id == ctx.user_id
        )
        if not owns and not ctx.is_chairman:
            logger.warning(f"User {ctx.user_id} tried to pay a foreign invoice")
            raise UnauthorizedError("Cannot pay invoice of another user")

        existing = self.repo.find_payment_by_key(ctx.tenant_id, key)
        if existing is not None:
            return self._replay(existing, invoice_id)

        if invoice.status == InvoiceStatus.CANCELED:
            raise ConflictError("Invoice canceled", code=INVOICE_CANCELED)
        if invoice.status == InvoiceStatus.PAID or invoice.outstanding_cents <= 0:
            raise ConflictError("Invoice already paid", code=INVOICE_ALREADY_PAID)

        provider_payment_id = _provider_payment_id()
        checkout_url = f"{settings.checkout_base_url.rstrip('/')}/{provider_payment_id}"
        try:
            with self.repo.transaction():
                payment = Payment(
                    tenant_id=ctx.tenant_id,
                    invoice_id=invoice.id,
                    created_by_id=ctx.user_id,
                    provider=self.provider,
                    status=PaymentStatus.PENDING,
                    amount_cents=invoice.outstanding_cents,
                    idempotency_key=key,
                    provider_payment_id=provider_payment_id,
                    external_url=checkout_url,
                    raw_payload={
                        "terminalKey": settings.terminal_key,
                        "invoiceNumber": invoice.number,
                    },
                )
                self.repo.add(payment)
                self.repo.flush()
                AuditService.log_for(
                    self.repo,
                    ctx,
                    "Payment",
                    payment.id,
                    "PAYMENT_INITIATED",
                    changes={"invoiceId": invoice_id, "amountCents": payment.amount_cents},
                )
        except DuplicateKeyError:
            winner = self.repo.find_payment_by_key(ctx.tenant_id, key)
            if winner is None:
                raise
            logger.info(f"Concurrent initiation for key {key!r}; returning winner {winner.id}")
            return self._replay(winner, invoice_id)

        logger.info(
            f"Initiated payment {payment.id} for invoice {invoice_id} "
            f"({payment.amount_cents} cents)"
        )
        return InitiateResult(payment=payment, checkout_url=checkout_url, reused=False)

    def apply_webhook(self, event: WebhookEvent, payload: dict[str, Any]) -> WebhookResult:
        """Apply one provider callback at most once.

        Args:
            event: Normalized callback
            payload: Raw body, stored on the event row

        Returns:
            WebhookResult; ``duplicate`` is True when the event id was seen before

        Raises:
            NotFoundError: payment not in the event's tenant
        """
        payment = self.repo.get_payment(event.tenant_id, event.payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")

        if self.repo.find_webhook_event(self.provider, event.event_id) is not None:
            logger.debug(f"Webhook event {event.event_id} already processed")
            return WebhookResult(duplicate=True, payment=payment)

        try:
            with self.repo.transaction():
                now = utcnow()
                self.repo.add(
                    PaymentWebhookEvent(
                        tenant_id=event.tenant_id,
                        provider=self.provider,
                        event_id=event.event_id,
                        payment_id=payment.id,
                        payload=payload,
                        received_at=now,
                        processed_at=now,
                    )
                )
                self.repo.flush()

                payment = self.repo.get_payment(event.tenant_id, event.payment_id, lock=True)
                previous = payment.status
                self._transition(payment, event.status, now)

                AuditService.log(
                    self.repo,
                    tenant_id=event.tenant_id,
                    entity_type="Payment",
                    entity_id=payment.id,
                    action="PAYMENT_WEBHOOK_APPLIED",
                    changes={
                        "eventId": event.event_id,
                        "from": previous.value,
                        "to": payment.status.value,
                    },
                )
        except DuplicateKeyError:
            logger.info(f"Webhook event {event.event_id} applied concurrently; duplicate")
            payment = self.repo.get_payment(event.tenant_id, event.payment_id)
            return WebhookResult(duplicate=True, payment=payment)

        logger.info(
            f"Applied webhook {event.event_id}: payment {payment.id} "
            f"{previous.value} -> {payment.status.value}"
        )
        return WebhookResult(duplicate=False, payment=payment)

    def verify_signature(self, signature: str | None) -> None:
        """Check the webhook signature header. Enforced only in production.

        Raises:
            UnauthorizedError: signature missing or wrong
        """
        if not settings.is_production:
            return
        if not signature or not hmac.compare_digest(
            signature.encode("utf-8"), settings.webhook_secret.encode("utf-8")
        ):
            logger.warning("Rejected webhook with invalid signature")
            raise UnauthorizedError("Invalid webhook signature", code="INVALID_SIGNATURE")

    def get_payment(self, ctx: RequestContext, payment_id: str) -> Payment:
        """Payment status for its creator or a chairman."""
        payment = self.repo.get_payment(ctx.tenant_id, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        if payment.created_by_id != ctx.user_id and not ctx.is_chairman:
            raise UnauthorizedError()
        return payment

    def list_payments(self, ctx: RequestContext) -> list[Payment]:
        if not ctx.is_chairman:
            raise UnauthorizedError()
        return self.repo.list_payments(ctx.tenant_id)

    def _transition(self, payment: Payment, status: PaymentStatus, now: datetime) -> None:
        if payment.status == PaymentStatus.SUCCESS:
            if status != PaymentStatus.SUCCESS:
                logger.warning(
                    f"Ignoring {status.value} for payment {payment.id}: already SUCCESS"
                )
            return

        payment.status = status
        if status != PaymentStatus.SUCCESS:
            return

        payment.settled_at = now
        invoice = self.repo.get_invoice(payment.tenant_id, payment.invoice_id, lock=True)
        self.ledger.apply_payment(invoice, payment.amount_cents, payment=payment)

    def _replay(self, payment: Payment, invoice_id: int) -> InitiateResult:
        if payment.invoice_id != invoice_id:
            raise ConflictError(
                "Idempotency key already used for another invoice",
                code=IDEMPOTENCY_KEY_REUSED,
            )
        logger.debug(f"Replaying payment {payment.id} for key {payment.idempotency_key!r}")
        return InitiateResult(payment=payment, checkout_url=payment.external_url, reused=True)


__all__ = [
    "IDEMPOTENCY_KEY_REUSED",
    "InitiateResult",
    "PaymentGateway",
    "WebhookEvent",
    "WebhookResult",
]
