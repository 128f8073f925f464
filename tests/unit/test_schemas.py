"""Tests for request validation at the API boundary."""

import pytest
from pydantic import ValidationError

from snt_billing.models import ChargeType
from snt_billing.schemas.billing import CreateChargeRequest, ParticipantsSummary
from snt_billing.schemas.payments import WebhookRequest
from snt_billing.services.audience_service import (
    Audience,
    AudienceResult,
    SkippedUser,
    SkipReason,
)


def _body(**overrides):
    body = {
        "title": "Взнос на дорогу",
        "unitAmountCents": 150000,
        "dueDate": "2026-03-01T00:00:00Z",
    }
    body.update(overrides)
    return body


class TestCreateChargeRequest:
    def test_defaults(self):
        request = CreateChargeRequest.model_validate(_body())
        assert request.type == ChargeType.ONE_TIME
        assert request.audience == Audience.PLOTS
        assert request.publish_now is True
        assert request.plot_ids is None
        assert request.include_chairman is False

    def test_enums_are_case_insensitive(self):
        request = CreateChargeRequest.model_validate(
            _body(type="monthly", audience="all_active_users_primary_plots")
        )
        assert request.type == ChargeType.MONTHLY
        assert request.audience == Audience.ALL_ACTIVE_USERS_PRIMARY_PLOTS

    def test_unknown_enum_rejected(self):
        with pytest.raises(ValidationError):
            CreateChargeRequest.model_validate(_body(type="YEARLY"))

    def test_amount_cents_alias(self):
        body = _body()
        body.pop("unitAmountCents")
        body["amountCents"] = 5000
        assert CreateChargeRequest.model_validate(body).unit_amount_cents == 5000

    @pytest.mark.parametrize("amount", [0, -100])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            CreateChargeRequest.model_validate(_body(unitAmountCents=amount))

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            CreateChargeRequest.model_validate(_body(title="   "))

    def test_bad_due_date_rejected(self):
        with pytest.raises(ValidationError):
            CreateChargeRequest.model_validate(_body(dueDate="first of March"))

    def test_user_audience_requires_user_ids(self):
        with pytest.raises(ValidationError):
            CreateChargeRequest.model_validate(_body(audience="USERS_PRIMARY_PLOTS"))

        request = CreateChargeRequest.model_validate(
            _body(audience="USERS_PRIMARY_PLOTS", userIds=[1, 2])
        )
        assert request.user_ids == [1, 2]


class TestResponses:
    def test_participants_summary_serializes_camel_case(self):
        summary = ParticipantsSummary.from_audience(
            AudienceResult(
                plot_ids=[10],
                included_users=[1],
                skipped_users=[SkippedUser(2, SkipReason.NO_PRIMARY_PLOT)],
            )
        )
        assert summary.model_dump(by_alias=True, mode="json") == {
            "includedUsers": [1],
            "includedPlots": [10],
            "skippedUsers": [{"userId": 2, "reason": "NO_PRIMARY_PLOT"}],
        }

    def test_webhook_request_requires_event_id(self):
        with pytest.raises(ValidationError):
            WebhookRequest.model_validate({"paymentId": "p", "tenantId": 1, "status": "SUCCESS"})
