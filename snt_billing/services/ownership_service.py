"""Read-only view of plot memberships used to target charges."""

import logging
from collections import defaultdict
from typing import Iterable

from snt_billing.services.repository import BillingRepository

logger = logging.getLogger(__name__)


class OwnershipDirectory:
    """Answers "which plot is this user's primary one right now"."""

    def __init__(self, repo: BillingRepository):
        self.repo = repo

    def primary_plots_by_user(self, tenant_id: int, user_ids: Iterable[int]) -> dict[int, int]:
        """Map each user to their single active primary plot.

        Users with no active primary membership are absent from the result.
        A user with more than one (the partial unique index forbids it, but
        legacy rows may exist) is treated as having none.

        Args:
            tenant_id: Tenant to search in
            user_ids: Users to look up

        Returns:
            Dict of user_id -> plot_id
        """
        plots: dict[int, list[int]] = defaultdict(list)
        for membership in self.repo.active_primary_memberships(tenant_id, user_ids):
            plots[membership.user_id].append(membership.plot_id)

        result: dict[int, int] = {}
        for user_id, plot_ids in plots.items():
            if len(plot_ids) > 1:
                logger.warning(
                    f"User {user_id} has {len(plot_ids)} active primary plots in tenant "
                    f"{tenant_id}; skipping"
                )
                continue
            result[user_id] = plot_ids[0]
        return result

    def current_primary_plot(self, tenant_id: int, user_id: int) -> int | None:
        return self.primary_plots_by_user(tenant_id, [user_id]).get(user_id)


__all__ = ["OwnershipDirectory"]
