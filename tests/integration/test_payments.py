"""Integration tests for payment initiation and provider webhooks."""

import pytest
from sqlalchemy import text

from snt_billing.config import settings
from snt_billing.models import (
    AuditLog,
    Invoice,
    InvoiceStatus,
    LedgerEntry,
    LedgerKind,
    Payment,
    PaymentStatus,
    PaymentWebhookEvent,
)
from snt_billing.services.charge_service import ChargeDraft, ChargeService
from snt_billing.services.errors import (
    INVOICE_ALREADY_PAID,
    INVOICE_CANCELED,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from snt_billing.services.invoice_service import InvoiceLedger, InvoiceService
from snt_billing.services.payment_gateway import (
    IDEMPOTENCY_KEY_REUSED,
    PaymentGateway,
    WebhookEvent,
)


@pytest.fixture
def invoices(repo, db_session, community, due_date):
    """One published charge of 100.00 on every resident plot, ordered by plot."""
    ChargeService(repo).create(
        community.chairman_ctx,
        ChargeDraft(title="Электричество", unit_amount_cents=10000, due_date=due_date),
    )
    return db_session.query(Invoice).order_by(Invoice.plot_id).all()


def _event(community, payment, event_id="evt-1", status="SUCCESS") -> WebhookEvent:
    return WebhookEvent.from_payload(
        {
            "eventId": event_id,
            "paymentId": payment.id,
            "tenantId": community.tenant.id,
            "status": status,
        }
    )


def _payments_ledger(db_session, invoice):
    return db_session.query(LedgerEntry).filter_by(
        invoice_id=invoice.id, kind=LedgerKind.PAYMENT
    )


class TestInitiatePayment:
    def test_initiate_for_outstanding_amount(self, repo, db_session, community, invoices):
        resident = community.residents[0]
        invoice = invoices[0]
        with repo.transaction():
            InvoiceLedger(repo).apply_payment(invoice, 4000)

        result = PaymentGateway(repo).initiate(community.ctx(resident), invoice.id, "key-1")

        payment = result.payment
        assert result.reused is False
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount_cents == 6000
        assert payment.created_by_id == resident.id
        assert payment.provider_payment_id.startswith("tb_")
        assert result.checkout_url == (
            f"{settings.checkout_base_url}/{payment.provider_payment_id}"
        )
        assert payment.raw_payload == {
            "terminalKey": settings.terminal_key,
            "invoiceNumber": invoice.number,
        }
        assert db_session.query(AuditLog).filter_by(action="PAYMENT_INITIATED").count() == 1

    def test_same_key_replays_original(self, repo, db_session, community, invoices):
        ctx = community.ctx(community.residents[0])
        gateway = PaymentGateway(repo)

        first = gateway.initiate(ctx, invoices[0].id, "retry-me")
        second = gateway.initiate(ctx, invoices[0].id, "retry-me")

        assert second.reused is True
        assert second.payment.id == first.payment.id
        assert second.checkout_url == first.checkout_url
        assert db_session.query(Payment).count() == 1

    def test_key_reused_for_other_invoice(self, repo, community, invoices):
        gateway = PaymentGateway(repo)
        gateway.initiate(community.chairman_ctx, invoices[0].id, "shared")

        with pytest.raises(ConflictError) as exc_info:
            gateway.initiate(community.chairman_ctx, invoices[1].id, "shared")
        assert exc_info.value.code == IDEMPOTENCY_KEY_REUSED

    def test_missing_key_generates_one(self, repo, db_session, community, invoices):
        ctx = community.ctx(community.residents[0])
        gateway = PaymentGateway(repo)

        gateway.initiate(ctx, invoices[0].id)
        gateway.initiate(ctx, invoices[0].id, "   ")

        keys = [p.idempotency_key for p in db_session.query(Payment)]
        assert len(keys) == 2
        assert all(keys) and keys[0] != keys[1]

    def test_foreign_invoice_is_unauthorized(self, repo, community, invoices):
        with pytest.raises(UnauthorizedError):
            PaymentGateway(repo).initiate(
                community.ctx(community.residents[1]), invoices[0].id, "k"
            )

    def test_unknown_invoice(self, repo, community, other_community, invoices):
        with pytest.raises(NotFoundError):
            PaymentGateway(repo).initiate(other_community.chairman_ctx, invoices[0].id, "k")

    def test_canceled_invoice_conflicts(self, repo, community, invoices):
        InvoiceService(repo).cancel(community.chairman_ctx, invoices[0].id)

        with pytest.raises(ConflictError) as exc_info:
            PaymentGateway(repo).initiate(community.chairman_ctx, invoices[0].id, "k")
        assert exc_info.value.code == INVOICE_CANCELED

    def test_paid_invoice_conflicts_but_replay_still_works(self, repo, community, invoices):
        ctx = community.ctx(community.residents[0])
        gateway = PaymentGateway(repo)
        first = gateway.initiate(ctx, invoices[0].id, "pay-once")
        gateway.apply_webhook(_event(community, first.payment), {})

        with pytest.raises(ConflictError) as exc_info:
            gateway.initiate(ctx, invoices[0].id, "another-key")
        assert exc_info.value.code == INVOICE_ALREADY_PAID

        replay = gateway.initiate(ctx, invoices[0].id, "pay-once")
        assert replay.reused is True
        assert replay.payment.status == PaymentStatus.SUCCESS

    def test_concurrent_initiation_returns_winner(
        self, repo, db_session, community, invoices, monkeypatch
    ):
        ctx = community.ctx(community.residents[0])
        gateway = PaymentGateway(repo)
        winner = gateway.initiate(ctx, invoices[0].id, "race")

        real_lookup = repo.find_payment_by_key
        calls = []

        def lookup_missing_first(tenant_id, key):
            calls.append(key)
            if len(calls) == 1:
                return None
            return real_lookup(tenant_id, key)

        monkeypatch.setattr(repo, "find_payment_by_key", lookup_missing_first)
        loser = gateway.initiate(ctx, invoices[0].id, "race")

        assert loser.reused is True
        assert loser.payment.id == winner.payment.id
        assert db_session.query(Payment).count() == 1


class TestWebhook:
    def test_success_settles_invoice(self, repo, db_session, community, invoices):
        gateway = PaymentGateway(repo)
        invoice = invoices[0]
        payment = gateway.initiate(community.ctx(community.residents[0]), invoice.id, "k").payment

        result = gateway.apply_webhook(_event(community, payment), {"raw": True})

        assert result.duplicate is False
        assert result.payment.status == PaymentStatus.SUCCESS
        assert result.payment.settled_at is not None
        db_session.refresh(invoice)
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_cents == 10000
        entry = _payments_ledger(db_session, invoice).one()
        assert entry.amount_cents == 10000
        assert entry.payment_id == payment.id
        event = db_session.query(PaymentWebhookEvent).one()
        assert event.payload == {"raw": True}
        assert event.processed_at is not None

    def test_duplicate_event_is_applied_once(self, repo, db_session, community, invoices):
        gateway = PaymentGateway(repo)
        payment = gateway.initiate(community.chairman_ctx, invoices[0].id, "k").payment

        gateway.apply_webhook(_event(community, payment), {})
        replay = gateway.apply_webhook(_event(community, payment), {})

        assert replay.duplicate is True
        assert _payments_ledger(db_session, invoices[0]).count() == 1
        assert db_session.query(PaymentWebhookEvent).count() == 1

    def test_second_success_event_does_not_pay_twice(
        self, repo, db_session, community, invoices
    ):
        gateway = PaymentGateway(repo)
        payment = gateway.initiate(community.chairman_ctx, invoices[0].id, "k").payment

        gateway.apply_webhook(_event(community, payment, "evt-1"), {})
        result = gateway.apply_webhook(_event(community, payment, "evt-2"), {})

        assert result.duplicate is False
        assert _payments_ledger(db_session, invoices[0]).count() == 1
        db_session.refresh(invoices[0])
        assert invoices[0].paid_cents == 10000

    def test_success_is_never_downgraded(self, repo, community, invoices):
        gateway = PaymentGateway(repo)
        payment = gateway.initiate(community.chairman_ctx, invoices[0].id, "k").payment

        gateway.apply_webhook(_event(community, payment, "evt-1"), {})
        result = gateway.apply_webhook(_event(community, payment, "evt-2", "FAILED"), {})

        assert result.payment.status == PaymentStatus.SUCCESS

    def test_failed_leaves_invoice_open(self, repo, db_session, community, invoices):
        gateway = PaymentGateway(repo)
        payment = gateway.initiate(community.chairman_ctx, invoices[0].id, "k").payment

        result = gateway.apply_webhook(_event(community, payment, status="rejected"), {})

        assert result.payment.status == PaymentStatus.PENDING
        result = gateway.apply_webhook(_event(community, payment, "evt-2", "failed"), {})
        assert result.payment.status == PaymentStatus.FAILED
        assert result.payment.settled_at is None
        db_session.refresh(invoices[0])
        assert invoices[0].status == InvoiceStatus.PENDING
        assert _payments_ledger(db_session, invoices[0]).count() == 0

    def test_unknown_payment(self, repo, community, other_community, invoices):
        gateway = PaymentGateway(repo)
        payment = gateway.initiate(community.chairman_ctx, invoices[0].id, "k").payment

        with pytest.raises(NotFoundError):
            gateway.apply_webhook(
                WebhookEvent("evt-x", payment.id, other_community.tenant.id, PaymentStatus.SUCCESS),
                {},
            )

    def test_concurrent_delivery_is_reported_duplicate(
        self, repo, db_session, community, invoices, monkeypatch
    ):
        gateway = PaymentGateway(repo)
        payment = gateway.initiate(community.chairman_ctx, invoices[0].id, "k").payment
        gateway.apply_webhook(_event(community, payment), {})

        monkeypatch.setattr(repo, "find_webhook_event", lambda provider, event_id: None)
        result = gateway.apply_webhook(_event(community, payment), {})

        assert result.duplicate is True
        assert _payments_ledger(db_session, invoices[0]).count() == 1

    def test_success_committed_by_another_delivery_is_not_credited_again(
        self, repo, db_session, community, invoices, monkeypatch
    ):
        gateway = PaymentGateway(repo)
        invoice = invoices[0]
        payment = gateway.initiate(community.chairman_ctx, invoice.id, "k").payment
        real_lookup = repo.find_webhook_event

        def settle_elsewhere(provider, event_id):
            # Row changes behind the already loaded Payment object
            db_session.execute(
                text("UPDATE payments SET status = 'SUCCESS' WHERE id = :id"),
                {"id": payment.id},
            )
            db_session.execute(
                text(
                    "UPDATE invoices SET paid_cents = 10000, status = 'PAID' WHERE id = :id"
                ),
                {"id": invoice.id},
            )
            return real_lookup(provider, event_id)

        monkeypatch.setattr(repo, "find_webhook_event", settle_elsewhere)
        result = gateway.apply_webhook(_event(community, payment, "evt-2"), {})

        assert result.duplicate is False
        assert result.payment.status == PaymentStatus.SUCCESS
        db_session.refresh(invoice)
        assert invoice.paid_cents == 10000
        assert _payments_ledger(db_session, invoice).count() == 0

    def test_payment_on_invoice_canceled_in_flight(self, repo, db_session, community, invoices):
        gateway = PaymentGateway(repo)
        payment = gateway.initiate(community.chairman_ctx, invoices[0].id, "k").payment
        InvoiceService(repo).cancel(community.chairman_ctx, invoices[0].id)

        gateway.apply_webhook(_event(community, payment), {})

        db_session.refresh(invoices[0])
        assert invoices[0].status == InvoiceStatus.PAID


class TestWebhookSignature:
    def test_not_checked_outside_production(self, repo):
        PaymentGateway(repo).verify_signature(None)

    def test_checked_in_production(self, repo, monkeypatch):
        monkeypatch.setattr(settings, "app_env", "production")
        monkeypatch.setattr(settings, "webhook_secret", "s3cret")
        gateway = PaymentGateway(repo)

        gateway.verify_signature("s3cret")
        for signature in (None, "", "wrong"):
            with pytest.raises(UnauthorizedError):
                gateway.verify_signature(signature)


class TestPaymentReads:
    def test_creator_and_chairman_can_read(self, repo, community, invoices):
        gateway = PaymentGateway(repo)
        owner = community.residents[0]
        payment = gateway.initiate(community.ctx(owner), invoices[0].id, "k").payment

        assert gateway.get_payment(community.ctx(owner), payment.id).id == payment.id
        assert gateway.get_payment(community.chairman_ctx, payment.id).id == payment.id
        with pytest.raises(UnauthorizedError):
            gateway.get_payment(community.ctx(community.residents[1]), payment.id)
        with pytest.raises(NotFoundError):
            gateway.get_payment(community.chairman_ctx, "no-such-payment")

    def test_listing_is_chairman_only(self, repo, community, invoices):
        gateway = PaymentGateway(repo)
        gateway.initiate(community.chairman_ctx, invoices[0].id, "a")
        gateway.initiate(community.chairman_ctx, invoices[1].id, "b")

        assert len(gateway.list_payments(community.chairman_ctx)) == 2
        with pytest.raises(UnauthorizedError):
            gateway.list_payments(community.ctx(community.residents[0]))
