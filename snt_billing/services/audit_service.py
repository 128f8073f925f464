"""Audit service for logging billing state changes."""

from typing import Any

from snt_billing.models.audit_log import AuditLog
from snt_billing.services.context import RequestContext
from snt_billing.services.repository import BillingRepository


class AuditService:
    """Service for audit log operations.

    Audit rows are written inside the same transaction as the change they
    describe, so an entry exists exactly when the change was committed.
    """

    @staticmethod
    def log(
        repo: BillingRepository,
        tenant_id: int,
        entity_type: str,
        entity_id: int | str,
        action: str,
        actor_id: int | None = None,
        request_id: str | None = None,
        changes: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create audit log entry (one-liner).

        Args:
            repo: Repository bound to the current transaction
            tenant_id: Tenant the entity belongs to
            entity_type: Type of entity ("Charge", "Invoice", "Payment")
            entity_id: Primary key of the entity
            action: Action performed ("CHARGE_CREATED", "INVOICE_CANCELED", ...)
            actor_id: User who performed the action (None for provider callbacks)
            request_id: Correlation id of the HTTP request
            changes: Optional JSON snapshot of changed fields

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_id=actor_id,
            request_id=request_id,
            changes=changes,
        )
        repo.add(audit)
        return audit

    @staticmethod
    def log_for(
        repo: BillingRepository,
        ctx: RequestContext,
        entity_type: str,
        entity_id: int | str,
        action: str,
        changes: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create audit log entry attributed to the calling user."""
        return AuditService.log(
            repo,
            tenant_id=ctx.tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=ctx.user_id,
            request_id=ctx.request_id,
            changes=changes,
        )


__all__ = ["AuditService"]
