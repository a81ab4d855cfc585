"""Tests for the membership status vocabulary and transition table."""

import pytest

from app.billing.status import (
    MembershipStatus,
    MembershipTrigger,
    is_entitling,
    next_status,
    status_from_stripe,
)


class TestStatusFromStripe:
    @pytest.mark.parametrize(
        ("stripe_status", "expected"),
        [
            ("active", MembershipStatus.ACTIVE),
            ("trialing", MembershipStatus.TRIALING),
            ("past_due", MembershipStatus.PAST_DUE),
            ("canceled", MembershipStatus.CANCELED),
            ("incomplete", MembershipStatus.INCOMPLETE),
            ("incomplete_expired", MembershipStatus.INCOMPLETE_EXPIRED),
            ("unpaid", MembershipStatus.UNPAID),
            ("paused", MembershipStatus.PAUSED),
        ],
    )
    def test_known_statuses(self, stripe_status, expected):
        assert status_from_stripe(stripe_status) is expected

    @pytest.mark.parametrize("stripe_status", [None, "", "ACTIVE", "on_hold"])
    def test_unrecognised_status_is_unknown(self, stripe_status):
        assert status_from_stripe(stripe_status) is MembershipStatus.UNKNOWN

    def test_cancel_at_period_end_marks_canceling(self):
        assert status_from_stripe("active", cancel_at_period_end=True) is MembershipStatus.CANCELING
        assert status_from_stripe("trialing", cancel_at_period_end=True) is MembershipStatus.CANCELING

    def test_cancel_at_period_end_ignored_for_non_active(self):
        assert status_from_stripe("past_due", cancel_at_period_end=True) is MembershipStatus.PAST_DUE


class TestEntitling:
    def test_entitling_set(self):
        entitling = {s for s in MembershipStatus if is_entitling(s)}
        assert entitling == {MembershipStatus.ACTIVE, MembershipStatus.TRIALING, MembershipStatus.CANCELING}

    def test_none_is_not_entitling(self):
        assert is_entitling(None) is False


class TestNextStatus:
    @pytest.mark.parametrize(
        "current",
        [MembershipStatus.ACTIVE, MembershipStatus.TRIALING, MembershipStatus.CANCELING, MembershipStatus.PAST_DUE],
    )
    def test_payment_failed_goes_past_due(self, current):
        assert next_status(current, MembershipTrigger.PAYMENT_FAILED) is MembershipStatus.PAST_DUE

    def test_payment_failed_leaves_canceled_alone(self):
        assert next_status(MembershipStatus.CANCELED, MembershipTrigger.PAYMENT_FAILED) is MembershipStatus.CANCELED

    @pytest.mark.parametrize("current", list(MembershipStatus) + [None])
    def test_overrides_and_delete_are_absolute(self, current):
        assert next_status(current, MembershipTrigger.SUBSCRIPTION_DELETED) is MembershipStatus.CANCELED
        assert next_status(current, MembershipTrigger.ADMIN_GRANT) is MembershipStatus.ACTIVE
        assert next_status(current, MembershipTrigger.ADMIN_REVOKE) is MembershipStatus.CANCELED

    def test_provider_sync_has_no_fixed_target(self):
        assert next_status(MembershipStatus.TRIALING, MembershipTrigger.PROVIDER_SYNC) is MembershipStatus.TRIALING
