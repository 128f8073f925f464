"""Tests for audience resolution."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from snt_billing.models import PlotOwnership, UserRole
from snt_billing.services.audience_service import (
    Audience,
    AudienceResolver,
    SkippedUser,
    SkipReason,
)
from snt_billing.services.errors import ValidationError
from snt_billing.services.ownership_service import OwnershipDirectory


@pytest.fixture
def resolver(repo):
    return AudienceResolver(repo)


class TestPlotsAudience:
    def test_omitted_plot_ids_means_every_plot(self, resolver, community):
        result = resolver.resolve(community.tenant.id, Audience.PLOTS)
        assert result.plot_ids == community.plot_ids
        assert result.skipped_users == []

    def test_explicit_plots_deduplicated_in_order(self, resolver, community):
        p1, p2, p3 = community.plot_ids
        result = resolver.resolve(community.tenant.id, Audience.PLOTS, plot_ids=[p3, p1, p3])
        assert result.plot_ids == [p3, p1]

    def test_unknown_plot_rejected(self, resolver, community):
        with pytest.raises(ValidationError):
            resolver.resolve(community.tenant.id, Audience.PLOTS, plot_ids=[999])

    def test_plot_of_another_tenant_rejected(self, resolver, community, other_community):
        with pytest.raises(ValidationError):
            resolver.resolve(
                community.tenant.id, Audience.PLOTS, plot_ids=[other_community.plot_ids[0]]
            )


class TestUsersAudience:
    def test_residents_map_to_their_primary_plots(self, resolver, community):
        result = resolver.resolve(
            community.tenant.id, Audience.USERS_PRIMARY_PLOTS, user_ids=community.resident_ids
        )
        assert result.plot_ids == community.plot_ids
        assert result.included_users == community.resident_ids
        assert result.skipped_users == []

    def test_user_ids_required(self, resolver, community):
        with pytest.raises(ValidationError):
            resolver.resolve(community.tenant.id, Audience.USERS_PRIMARY_PLOTS)

    def test_unknown_and_inactive_users_are_skipped_as_inactive(
        self, resolver, community, add_member
    ):
        inactive = add_member(community, "Inactive", is_active=False)
        result = resolver.resolve(
            community.tenant.id,
            Audience.USERS_PRIMARY_PLOTS,
            user_ids=[community.residents[0].id, inactive.id, 9999],
        )
        assert result.plot_ids == [community.plots[0].id]
        assert result.skipped_users == [
            SkippedUser(inactive.id, SkipReason.INACTIVE),
            SkippedUser(9999, SkipReason.INACTIVE),
        ]

    def test_user_of_another_tenant_is_skipped(self, resolver, community, other_community):
        outsider = other_community.residents[0]
        result = resolver.resolve(
            community.tenant.id, Audience.USERS_PRIMARY_PLOTS, user_ids=[outsider.id]
        )
        assert result.plot_ids == []
        assert result.skipped_users == [SkippedUser(outsider.id, SkipReason.INACTIVE)]

    def test_user_without_primary_plot(self, resolver, community, add_member):
        tenant_only = add_member(community, "Renter", new_plot=False)
        secondary = add_member(community, "Co-owner", plot=community.plots[0], primary=False)
        result = resolver.resolve(
            community.tenant.id,
            Audience.USERS_PRIMARY_PLOTS,
            user_ids=[tenant_only.id, secondary.id],
        )
        assert result.plot_ids == []
        assert [s.reason for s in result.skipped_users] == [
            SkipReason.NO_PRIMARY_PLOT,
            SkipReason.NO_PRIMARY_PLOT,
        ]

    def test_ended_membership_is_not_active(self, resolver, community, db_session):
        resident = community.residents[0]
        membership = (
            db_session.query(PlotOwnership).filter(PlotOwnership.user_id == resident.id).one()
        )
        membership.to_date = datetime(2025, 1, 1, tzinfo=timezone.utc)
        db_session.commit()

        result = resolver.resolve(
            community.tenant.id, Audience.USERS_PRIMARY_PLOTS, user_ids=[resident.id]
        )
        assert result.skipped_users == [SkippedUser(resident.id, SkipReason.NO_PRIMARY_PLOT)]

    def test_chairman_skipped_unless_included(self, resolver, community, add_member):
        chairman = community.chairman
        plot = community.plots[1]
        result = resolver.resolve(
            community.tenant.id, Audience.USERS_PRIMARY_PLOTS, user_ids=[chairman.id]
        )
        assert result.skipped_users == [SkippedUser(chairman.id, SkipReason.INACTIVE)]

        second_chair = add_member(community, "Deputy", role=UserRole.CHAIRMAN, plot=plot)
        result = resolver.resolve(
            community.tenant.id,
            Audience.USERS_PRIMARY_PLOTS,
            user_ids=[second_chair.id],
            include_chairman=True,
        )
        assert result.plot_ids == [plot.id]
        assert result.included_users == [second_chair.id]

    def test_shared_primary_plot_appears_once(self, resolver, community, add_member):
        plot = community.plots[0]
        spouse = add_member(community, "Spouse", plot=plot)
        result = resolver.resolve(
            community.tenant.id,
            Audience.USERS_PRIMARY_PLOTS,
            user_ids=[community.residents[0].id, spouse.id],
        )
        assert result.plot_ids == [plot.id]
        assert result.included_users == [community.residents[0].id, spouse.id]


class TestAllActiveUsersAudience:
    def test_all_active_residents(self, resolver, community, add_member):
        add_member(community, "Gone", is_active=False)
        result = resolver.resolve(community.tenant.id, Audience.ALL_ACTIVE_USERS_PRIMARY_PLOTS)
        assert result.plot_ids == community.plot_ids[:3]
        assert set(result.included_users) == set(community.resident_ids[:3])

    def test_chairman_included_on_request(self, resolver, community, add_member):
        deputy = add_member(community, "Deputy", role=UserRole.CHAIRMAN)
        without = resolver.resolve(community.tenant.id, Audience.ALL_ACTIVE_USERS_PRIMARY_PLOTS)
        with_chair = resolver.resolve(
            community.tenant.id, Audience.ALL_ACTIVE_USERS_PRIMARY_PLOTS, include_chairman=True
        )
        assert deputy.id not in without.included_users
        assert deputy.id in with_chair.included_users


class TestOwnershipDirectory:
    def test_current_primary_plot(self, repo, community, add_member):
        directory = OwnershipDirectory(repo)
        lodger = add_member(community, "Lodger", new_plot=False)

        assert (
            directory.current_primary_plot(community.tenant.id, community.residents[0].id)
            == community.plots[0].id
        )
        assert directory.current_primary_plot(community.tenant.id, lodger.id) is None
        assert directory.current_primary_plot(community.tenant.id + 1, lodger.id) is None

    def test_ambiguous_primary_membership_resolves_to_none(self):
        memberships = [
            SimpleNamespace(user_id=1, plot_id=10),
            SimpleNamespace(user_id=1, plot_id=11),
            SimpleNamespace(user_id=2, plot_id=12),
        ]
        repo = SimpleNamespace(active_primary_memberships=lambda tenant_id, user_ids: memberships)

        result = OwnershipDirectory(repo).primary_plots_by_user(1, [1, 2])

        assert result == {2: 12}
