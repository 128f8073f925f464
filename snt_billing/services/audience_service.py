"""Audience resolution: turn a charge's targeting rule into a set of plots."""

import logging
from dataclasses import dataclass, field
from enum import Enum

from snt_billing.models import UserRole
from snt_billing.services.errors import ValidationError
from snt_billing.services.ownership_service import OwnershipDirectory
from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)


class Audience(str, Enum):
    """How a charge selects the plots it bills."""

    PLOTS = "PLOTS"
    USERS_PRIMARY_PLOTS = "USERS_PRIMARY_PLOTS"
    ALL_ACTIVE_USERS_PRIMARY_PLOTS = "ALL_ACTIVE_USERS_PRIMARY_PLOTS"


class SkipReason(str, Enum):
    """Why a requested user did not produce a plot."""

    INACTIVE = "INACTIVE"
    NO_PRIMARY_PLOT = "NO_PRIMARY_PLOT"


@dataclass(frozen=True)
class SkippedUser:
    user_id: int
    reason: SkipReason


@dataclass
class AudienceResult:
    """Resolved plots plus the users that were included or skipped."""

    plot_ids: list[int] = field(default_factory=list)
    included_users: list[int] = field(default_factory=list)
    skipped_users: list[SkippedUser] = field(default_factory=list)


def _dedupe(values: list[int]) -> list[int]:
    return list(dict.fromkeys(values))


class AudienceResolver:
    """Resolves an audience rule to a deduplicated, ordered list of plot ids.

    Pure read: never writes, safe to call inside or outside a transaction.
    """

    def __init__(self, repo: BillingRepository, ownership: OwnershipDirectory | None = None):
        self.repo = repo
        self.ownership = ownership or OwnershipDirectory(repo)

    def resolve(
        self,
        tenant_id: int,
        audience: Audience,
        plot_ids: list[int] | None = None,
        user_ids: list[int] | None = None,
        include_chairman: bool = False,
    ) -> AudienceResult:
        """Resolve the audience.

        Args:
            tenant_id: Tenant scope
            audience: Targeting mode
            plot_ids: Explicit plots for PLOTS (None means every plot of the tenant)
            user_ids: Explicit users for USERS_PRIMARY_PLOTS
            include_chairman: Let chairmen be billed too

        Returns:
            AudienceResult

        Raises:
            ValidationError: unknown plot ids, or user ids missing for USERS_PRIMARY_PLOTS
        """
        if audience == Audience.PLOTS:
            return self._resolve_plots(tenant_id, plot_ids)

        if audience == Audience.USERS_PRIMARY_PLOTS:
            if user_ids is None:
                raise ValidationError("userIds are required for USERS_PRIMARY_PLOTS audience")
            requested = _dedupe(user_ids)
        else:
            roles = self._allowed_roles(include_chairman)
            requested = self.repo.list_active_user_ids(tenant_id, roles)

        return self._resolve_users(tenant_id, requested, include_chairman)

    def _resolve_plots(self, tenant_id: int, plot_ids: list[int] | None) -> AudienceResult:
        if plot_ids is None:
            return AudienceResult(plot_ids=self.repo.list_plot_ids(tenant_id))

        requested = _dedupe(plot_ids)
        known = self.repo.existing_plot_ids(tenant_id, requested)
        unknown = [plot_id for plot_id in requested if plot_id not in known]
        if unknown:
            raise ValidationError(f"Unknown plots: {', '.join(str(p) for p in unknown)}")
        return AudienceResult(plot_ids=requested)

    def _resolve_users(
        self, tenant_id: int, user_ids: list[int], include_chairman: bool
    ) -> AudienceResult:
        allowed_roles = self._allowed_roles(include_chairman)
        users = {user.id: user for user in self.repo.get_users(tenant_id, user_ids)}
        eligible = [
            user_id
            for user_id in user_ids
            if user_id in users
            and users[user_id].is_active
            and users[user_id].role in allowed_roles
        ]
        primary_plots = self.ownership.primary_plots_by_user(tenant_id, eligible)

        result = AudienceResult()
        for user_id in user_ids:
            if user_id not in eligible:
                result.skipped_users.append(SkippedUser(user_id, SkipReason.INACTIVE))
            elif user_id not in primary_plots:
                result.skipped_users.append(SkippedUser(user_id, SkipReason.NO_PRIMARY_PLOT))
            else:
                result.included_users.append(user_id)
                result.plot_ids.append(primary_plots[user_id])

        result.plot_ids = _dedupe(result.plot_ids)
        if result.skipped_users:
            logger.debug(
                f"Audience in tenant {tenant_id}: {len(result.included_users)} included, "
                f"{len(result.skipped_users)} skipped"
            )
        return result

    @staticmethod
    def _allowed_roles(include_chairman: bool) -> list[UserRole]:
        if include_chairman:
            return [UserRole.USER, UserRole.CHAIRMAN]
        return [UserRole.USER]


__all__ = ["Audience", "AudienceResolver", "AudienceResult", "SkipReason", "SkippedUser"]
