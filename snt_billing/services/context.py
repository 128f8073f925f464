"""Caller identity as supplied by the upstream auth gateway."""

from dataclasses import dataclass

from snt_billing.models import UserRole


@dataclass(frozen=True)
class RequestContext:
    """Who is calling and on behalf of which tenant.

    This core never authenticates; it only compares role and ownership.
    """

    tenant_id: int
    user_id: int
    role: UserRole = UserRole.USER
    request_id: str | None = None

    @property
    def is_chairman(self) -> bool:
        return self.role == UserRole.CHAIRMAN


__all__ = ["RequestContext"]
