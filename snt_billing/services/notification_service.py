"""Notification service for writing in-app messages to residents."""

import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from snt_billing.models import Charge, InAppNotification, Invoice, NotificationType
from snt_billing.services.locale_service import format_cents, format_due_date
from snt_billing.services.localizer import t
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)


class NotificationTransport(ABC):
    """Abstract delivery channel for resident notifications."""

    @abstractmethod
    def send(
        self,
        tenant_id: int,
        user_id: int,
        title: str,
        body: str,
        payload: dict[str, Any] | None = None,
        notification_type: NotificationType = NotificationType.BILLING,
    ) -> None:
        """Deliver one notification to one user."""


class InAppTransport(NotificationTransport):
    """Writes notifications to the in_app_notifications table.

    Each write runs in a SAVEPOINT so a failure here never rolls back the
    financial transaction that triggered it.
    """

    def __init__(self, repo: BillingRepository):
        self.repo = repo

    def send(
        self,
        tenant_id: int,
        user_id: int,
        title: str,
        body: str,
        payload: dict[str, Any] | None = None,
        notification_type: NotificationType = NotificationType.BILLING,
    ) -> None:
        with self.repo.savepoint():
            self.repo.add(
                InAppNotification(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    type=notification_type,
                    title=title,
                    body=body,
                    payload=payload,
                )
            )
            self.repo.flush()


class NotificationService:
    """Best-effort resident notifications produced by billing."""

    def __init__(self, transport: NotificationTransport):
        self.transport = transport

    def notify_invoice_issued(self, charge: Charge, invoice: Invoice, user_id: int) -> bool:
        """Tell the plot owner a new invoice is waiting for payment.

        Args:
            charge: Charge the invoice was issued for
            invoice: Newly issued (or re-issued) invoice
            user_id: Recipient, the plot's active owner

        Returns:
            True if delivered, False if the transport failed (logged, not raised)
        """
        title = t("notifications.invoice_issued_title")
        body = t(
            "notifications.invoice_issued_body",
            title=charge.title,
            amount=format_cents(invoice.total_cents),
            due_date=format_due_date(invoice.due_date),
        )
        payload = {"chargeId": charge.id, "invoiceId": invoice.id}

        try:
            self.transport.send(
                tenant_id=invoice.tenant_id,
                user_id=user_id,
                title=title,
                body=body,
                payload=payload,
            )
        except SQLAlchemyError as e:
            logger.warning(
                f"Failed to notify user {user_id} about invoice {invoice.number}: {e}"
            )
            return False

        logger.debug(f"Notified user {user_id} about invoice {invoice.number}")
        return True


__all__ = ["NotificationTransport", "InAppTransport", "NotificationService"]
