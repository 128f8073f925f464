"""Billing API schemas (charges, invoices, balances)."""

from datetime import datetime

from pydantic import AliasChoices, Field, field_validator, model_validator

from snt_billing.models import (
    Charge,
    ChargeStatus,
    ChargeType,
    Invoice,
    InvoiceStatus,
    LedgerEntry,
    LedgerKind,
)
from snt_billing.schemas import CamelModel
from snt_billing.services.audience_service import Audience, AudienceResult, SkipReason
from snt_billing.services.balance_service import ChargeProgress, UserBalance


def _upper(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


class CreateChargeRequest(CamelModel):
    """Body of POST /billing/charges."""

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    type: ChargeType = ChargeType.ONE_TIME
    unit_amount_cents: int = Field(
        gt=0,
        validation_alias=AliasChoices("unitAmountCents", "amountCents", "unit_amount_cents"),
    )
    due_date: datetime
    audience: Audience = Audience.PLOTS
    plot_ids: list[int] | None = None
    user_ids: list[int] | None = None
    include_chairman: bool = False
    publish_now: bool = True

    @field_validator("type", "audience", mode="before")
    @classmethod
    def normalize_enum(cls, value):
        return _upper(value)

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @model_validator(mode="after")
    def check_audience(self) -> "CreateChargeRequest":
        if self.audience == Audience.USERS_PRIMARY_PLOTS and self.user_ids is None:
            raise ValueError("userIds are required for USERS_PRIMARY_PLOTS audience")
        return self


class ReplaceParticipantsRequest(CamelModel):
    """Body of PUT /billing/charges/{id}/participants."""

    user_ids: list[int]
    include_chairman: bool = False


class SkippedUserResponse(CamelModel):
    user_id: int
    reason: SkipReason


class ParticipantsSummary(CamelModel):
    included_users: list[int]
    included_plots: list[int]
    skipped_users: list[SkippedUserResponse]

    @classmethod
    def from_audience(cls, audience: AudienceResult) -> "ParticipantsSummary":
        return cls(
            included_users=audience.included_users,
            included_plots=audience.plot_ids,
            skipped_users=[
                SkippedUserResponse(user_id=s.user_id, reason=s.reason)
                for s in audience.skipped_users
            ],
        )


class ProgressResponse(CamelModel):
    total: int
    paid: int
    outstanding: int
    progress_percent: int
    participants_count: int
    paid_count: int
    partial_count: int
    unpaid_count: int
    canceled_count: int

    @classmethod
    def from_progress(cls, progress: ChargeProgress) -> "ProgressResponse":
        return cls(
            total=progress.total,
            paid=progress.paid,
            outstanding=progress.outstanding,
            progress_percent=progress.progress_percent,
            participants_count=progress.participants_count,
            paid_count=progress.paid_count,
            partial_count=progress.partial_count,
            unpaid_count=progress.unpaid_count,
            canceled_count=progress.canceled_count,
        )


class ChargeResponse(CamelModel):
    id: int
    title: str
    description: str | None = None
    type: ChargeType
    status: ChargeStatus
    unit_amount_cents: int
    due_date: datetime
    created_by_id: int
    created_at: datetime
    published_at: datetime | None = None
    closed_at: datetime | None = None
    summary: ProgressResponse | None = None

    @classmethod
    def from_charge(
        cls, charge: Charge, progress: ChargeProgress | None = None
    ) -> "ChargeResponse":
        return cls(
            id=charge.id,
            title=charge.title,
            description=charge.description,
            type=charge.type,
            status=charge.status,
            unit_amount_cents=charge.amount_cents,
            due_date=charge.due_date,
            created_by_id=charge.created_by_id,
            created_at=charge.created_at,
            published_at=charge.published_at,
            closed_at=charge.closed_at,
            summary=ProgressResponse.from_progress(progress) if progress else None,
        )


class InvoiceResponse(CamelModel):
    id: int
    number: str
    charge_id: int | None = None
    charge_title: str | None = None
    plot_id: int
    plot_number: str | None = None
    user_id: int | None = None
    status: InvoiceStatus
    total_cents: int
    paid_cents: int
    outstanding_cents: int
    due_date: datetime
    issued_at: datetime
    closed_at: datetime | None = None

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            number=invoice.number,
            charge_id=invoice.charge_id,
            charge_title=invoice.charge.title if invoice.charge is not None else None,
            plot_id=invoice.plot_id,
            plot_number=invoice.plot.number if invoice.plot is not None else None,
            user_id=invoice.user_id,
            status=invoice.status,
            total_cents=invoice.total_cents,
            paid_cents=invoice.paid_cents,
            outstanding_cents=max(invoice.outstanding_cents, 0),
            due_date=invoice.due_date,
            issued_at=invoice.issued_at,
            closed_at=invoice.closed_at,
        )


class CreateChargeResponse(CamelModel):
    charge: ChargeResponse
    participants: ParticipantsSummary
    published: bool


class ChargeListResponse(CamelModel):
    items: list[ChargeResponse]


class ChargeDetailResponse(CamelModel):
    charge: ChargeResponse
    invoices: list[InvoiceResponse]


class ReplaceParticipantsResponse(CamelModel):
    added: int
    removed: int
    included_users: list[int]
    skipped_users: list[SkippedUserResponse]


class PublishChargeResponse(CamelModel):
    ok: bool = True
    charge: ChargeResponse


class CloseChargeResponse(CamelModel):
    ok: bool = True
    already_closed: bool = False
    charge: ChargeResponse


class BalanceResponse(CamelModel):
    total_due: int
    total_paid: int
    outstanding: int
    invoices: list[InvoiceResponse]

    @classmethod
    def from_balance(cls, balance: UserBalance) -> "BalanceResponse":
        return cls(
            total_due=balance.total_due,
            total_paid=balance.total_paid,
            outstanding=balance.outstanding,
            invoices=[InvoiceResponse.from_invoice(invoice) for invoice in balance.invoices],
        )


class InvoiceListResponse(CamelModel):
    items: list[InvoiceResponse]


class LedgerEntryResponse(CamelModel):
    id: int
    invoice_id: int | None = None
    payment_id: str | None = None
    kind: LedgerKind
    amount_cents: int
    description: str | None = None
    posted_at: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "LedgerEntryResponse":
        return cls(
            id=entry.id,
            invoice_id=entry.invoice_id,
            payment_id=entry.payment_id,
            kind=entry.kind,
            amount_cents=entry.amount_cents,
            description=entry.description,
            posted_at=entry.posted_at,
        )


class LedgerListResponse(CamelModel):
    items: list[LedgerEntryResponse]


class CancelInvoiceResponse(CamelModel):
    invoice: InvoiceResponse


__all__ = [
    "BalanceResponse",
    "CancelInvoiceResponse",
    "ChargeDetailResponse",
    "ChargeListResponse",
    "ChargeResponse",
    "CloseChargeResponse",
    "CreateChargeRequest",
    "CreateChargeResponse",
    "InvoiceListResponse",
    "InvoiceResponse",
    "LedgerEntryResponse",
    "LedgerListResponse",
    "ParticipantsSummary",
    "ProgressResponse",
    "PublishChargeResponse",
    "ReplaceParticipantsRequest",
    "ReplaceParticipantsResponse",
    "SkippedUserResponse",
]
