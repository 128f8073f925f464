"""Request-scoped dependencies: identity, role gate, repository."""

import logging

from fastapi import Depends, Header, status
from sqlalchemy.orm import Session

from snt_billing.models import UserRole
from snt_billing.services import get_db
from snt_billing.services.context import RequestContext
from snt_billing.services.errors import UnauthorizedError, ValidationError
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)


def get_request_context(
    x_tenant_id: int | None = Header(None, alias="X-Tenant-Id"),  # noqa: B008
    x_user_id: int | None = Header(None, alias="X-User-Id"),  # noqa: B008
    x_user_role: str | None = Header(None, alias="X-User-Role"),  # noqa: B008
    x_request_id: str | None = Header(None, alias="X-Request-Id"),  # noqa: B008
) -> RequestContext:
    """Build the caller's context from headers set by the upstream auth gateway.

    Raises:
        UnauthorizedError: tenant or user header missing (401)
        ValidationError: unknown role
    """
    if x_tenant_id is None or x_user_id is None:
        raise UnauthorizedError(
            "Authentication required",
            code="NOT_AUTHENTICATED",
            http_status=status.HTTP_401_UNAUTHORIZED,
        )

    role = UserRole.USER
    if x_user_role:
        try:
            role = UserRole(x_user_role.strip().upper())
        except ValueError as e:
            raise ValidationError(f"Unknown role: {x_user_role}") from e

    return RequestContext(
        tenant_id=x_tenant_id,
        user_id=x_user_id,
        role=role,
        request_id=x_request_id,
    )


def require_chairman(
    ctx: RequestContext = Depends(get_request_context),  # noqa: B008
) -> RequestContext:
    """Role gate for chairman-only endpoints."""
    if not ctx.is_chairman:
        logger.warning(f"User {ctx.user_id} denied chairman-only action")
        raise UnauthorizedError("Chairman role required")
    return ctx


def get_repository(db: Session = Depends(get_db)) -> BillingRepository:  # noqa: B008
    return BillingRepository(db)


__all__ = ["get_repository", "get_request_context", "require_chairman"]
