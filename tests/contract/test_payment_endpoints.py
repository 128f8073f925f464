"""Contract tests for /payments endpoints."""

import pytest
from fastapi.testclient import TestClient

from snt_billing.config import settings


@pytest.fixture
def invoice_id(client: TestClient, community) -> int:
    """Invoice of 100.00 on the first resident's plot."""
    response = client.post(
        "/billing/charges",
        json={
            "title": "Электричество",
            "unitAmountCents": 10000,
            "dueDate": "2026-03-01T00:00:00Z",
            "plotIds": [community.plots[0].id],
        },
        headers=community.headers(community.chairman),
    )
    assert response.status_code == 201, response.text
    invoices = client.get("/billing/invoices", headers=community.headers(community.residents[0]))
    return invoices.json()["items"][0]["id"]


def _initiate(client, community, invoice_id, key="key-1", user=None):
    user = user or community.residents[0]
    return client.post(
        "/payments/initiate",
        json={"invoiceId": invoice_id, "idempotencyKey": key},
        headers=community.headers(user),
    )


def _webhook(client, community, payment_id, event_id="evt-1", status="SUCCESS", headers=None):
    return client.post(
        "/payments/webhook",
        json={
            "eventId": event_id,
            "paymentId": payment_id,
            "tenantId": community.tenant.id,
            "status": status,
        },
        headers=headers or {},
    )


class TestInitiateEndpoint:
    def test_initiate_then_replay(self, client: TestClient, community, invoice_id):
        first = _initiate(client, community, invoice_id)
        second = _initiate(client, community, invoice_id)

        assert first.status_code == 201
        body = first.json()
        assert body["reused"] is False
        assert body["payment"]["status"] == "PENDING"
        assert body["payment"]["amountCents"] == 10000
        assert body["payment"]["provider"] == "T_BANK"
        assert body["checkoutUrl"].startswith(settings.checkout_base_url)

        assert second.status_code == 200
        assert second.json()["reused"] is True
        assert second.json()["payment"]["id"] == body["payment"]["id"]

    def test_foreign_invoice_is_403(self, client: TestClient, community, invoice_id):
        response = _initiate(client, community, invoice_id, user=community.residents[1])

        assert response.status_code == 403

    def test_unknown_invoice_is_404(self, client: TestClient, community, invoice_id):
        response = _initiate(client, community, 987654)

        assert response.status_code == 404

    def test_canceled_invoice_is_409(self, client: TestClient, community, invoice_id):
        client.post(
            f"/billing/invoices/{invoice_id}/cancel",
            headers=community.headers(community.chairman),
        )

        response = _initiate(client, community, invoice_id)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVOICE_CANCELED"

    def test_missing_invoice_id_is_422(self, client: TestClient, community):
        response = client.post(
            "/payments/initiate",
            json={"idempotencyKey": "k"},
            headers=community.headers(community.residents[0]),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestWebhookEndpoint:
    def test_success_then_duplicate(self, client: TestClient, community, invoice_id):
        payment_id = _initiate(client, community, invoice_id).json()["payment"]["id"]

        first = _webhook(client, community, payment_id)
        second = _webhook(client, community, payment_id)

        assert first.status_code == 200
        assert first.json() == {"ok": True, "duplicate": False}
        assert second.status_code == 200
        assert second.json() == {"ok": True, "duplicate": True}

        balance = client.get(
            "/billing/balance/me", headers=community.headers(community.residents[0])
        ).json()
        assert balance["totalPaid"] == 10000
        assert balance["outstanding"] == 0
        assert balance["invoices"][0]["status"] == "PAID"

        status = client.get(
            f"/payments/{payment_id}/status", headers=community.headers(community.residents[0])
        )
        assert status.status_code == 200
        assert status.json()["status"] == "SUCCESS"
        assert status.json()["settledAt"] is not None

    def test_paid_invoice_is_409(self, client: TestClient, community, invoice_id):
        payment_id = _initiate(client, community, invoice_id).json()["payment"]["id"]
        _webhook(client, community, payment_id)

        response = _initiate(client, community, invoice_id, key="key-2")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVOICE_ALREADY_PAID"

    def test_unknown_payment_is_404(self, client: TestClient, community):
        response = _webhook(client, community, "00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404

    def test_signature_enforced_in_production(
        self, client: TestClient, community, invoice_id, monkeypatch
    ):
        payment_id = _initiate(client, community, invoice_id).json()["payment"]["id"]
        monkeypatch.setattr(settings, "app_env", "production")
        monkeypatch.setattr(settings, "webhook_secret", "s3cret")

        rejected = _webhook(client, community, payment_id, headers={"X-Payment-Signature": "x"})
        accepted = _webhook(
            client, community, payment_id, headers={"X-Payment-Signature": "s3cret"}
        )

        assert rejected.status_code == 403
        assert rejected.json()["error"]["code"] == "INVALID_SIGNATURE"
        assert accepted.status_code == 200

    def test_blank_event_id_is_422(self, client: TestClient, community):
        response = _webhook(client, community, "p", event_id="")

        assert response.status_code == 422


class TestPaymentReadEndpoints:
    def test_status_visible_to_creator_and_chairman(
        self, client: TestClient, community, invoice_id
    ):
        payment_id = _initiate(client, community, invoice_id).json()["payment"]["id"]

        for user, expected in [
            (community.residents[0], 200),
            (community.chairman, 200),
            (community.residents[1], 403),
        ]:
            response = client.get(
                f"/payments/{payment_id}/status", headers=community.headers(user)
            )
            assert response.status_code == expected

    def test_list_payments(self, client: TestClient, community, invoice_id):
        _initiate(client, community, invoice_id)

        chairman = client.get("/payments", headers=community.headers(community.chairman))
        resident = client.get("/payments", headers=community.headers(community.residents[0]))

        assert chairman.status_code == 200
        assert len(chairman.json()["items"]) == 1
        assert chairman.json()["items"][0]["idempotencyKey"] == "key-1"
        assert resident.status_code == 403
