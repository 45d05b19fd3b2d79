"""Tests for the membership registry: admin gate, capacity, membership lifecycle.

Proves registry invariants:
- member_count always equals the number of active members after any
  sequence of adds and removes.
- An add never succeeds once the count has reached the limit.
- Every admin-gated operation rejects a non-admin caller with NotAdmin,
  regardless of whether its other arguments are valid.

Also covers:
- Self-targeting rejection (InvalidUser) ahead of the admin gate
- Limit changes, including shrinking below the current count
- Conditional limit updates (open by default, gated by policy)
- Counter override (reset_member_count)
- Read-only queries and remaining-slot clamping
- Pause flag (inert by default, enforced by policy)
- Persistence round-trip (from_records / to_records)
"""

from __future__ import annotations

from typing import Any

import pytest

from dao_membership.models.errors import (
    AlreadyMember,
    InvalidLimit,
    InvalidUser,
    MemberLimitReached,
    NotAdmin,
    NotMember,
    RegistryErrorKind,
    RegistryPaused,
)
from dao_membership.registry.engine import (
    DEFAULT_MAX_MEMBERS,
    MembershipRegistry,
)

ADMIN = "admin"


def _active_flag_count(registry: MembershipRegistry) -> int:
    """Count active flags by scanning stored records, not the counter."""
    flags = registry.to_records()["store"]["flags"]
    return sum(1 for v in flags.values() if v)


@pytest.fixture
def registry() -> MembershipRegistry:
    return MembershipRegistry(ADMIN)


def _limited(limit: int, **extra: Any) -> MembershipRegistry:
    return MembershipRegistry(ADMIN, {"default_max_members": limit, **extra})


# ==================================================================
# Construction
# ==================================================================

class TestConstruction:

    def test_admin_is_constructing_caller(self, registry: MembershipRegistry) -> None:
        assert registry.get_dao_admin() == ADMIN

    def test_starts_empty(self, registry: MembershipRegistry) -> None:
        assert registry.get_current_member_count() == 0
        assert registry.is_empty()
        assert not registry.is_paused()
        assert registry.get_max_members() == DEFAULT_MAX_MEMBERS

    def test_blank_admin_rejected(self) -> None:
        with pytest.raises(ValueError, match="blank"):
            MembershipRegistry("  ")

    def test_non_positive_policy_bound_rejected(self) -> None:
        with pytest.raises(ValueError, match="reset_sweep_size"):
            MembershipRegistry(ADMIN, {"reset_sweep_size": 0})

    def test_independent_registries_do_not_share_state(self) -> None:
        a = MembershipRegistry("alice")
        b = MembershipRegistry("bob")
        a.add_dao_member("alice", "carol")
        assert a.check_is_member("carol")
        assert not b.check_is_member("carol")
        assert b.get_dao_admin() == "bob"


# ==================================================================
# Membership lifecycle
# ==================================================================

class TestMembershipLifecycle:

    def test_add_member(self, registry: MembershipRegistry) -> None:
        ordinal = registry.add_dao_member(ADMIN, "p1")
        assert ordinal == 0
        assert registry.check_is_member("p1")
        assert registry.is_active_member("p1")
        assert not registry.check_is_not_member("p1")
        assert registry.get_current_member_count() == 1

    def test_unknown_principal_is_not_member(self, registry: MembershipRegistry) -> None:
        assert not registry.check_is_member("ghost")
        assert registry.check_is_not_member("ghost")

    def test_double_add_fails(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "p1")
        with pytest.raises(AlreadyMember):
            registry.add_dao_member(ADMIN, "p1")
        assert registry.get_current_member_count() == 1

    def test_add_then_remove_round_trip(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "p0")
        before = registry.get_current_member_count()
        registry.add_dao_member(ADMIN, "p1")
        registry.remove_dao_member(ADMIN, "p1")
        assert not registry.check_is_member("p1")
        assert registry.get_current_member_count() == before

    def test_remove_non_member_fails(self, registry: MembershipRegistry) -> None:
        with pytest.raises(NotMember):
            registry.remove_dao_member(ADMIN, "ghost")

    def test_removed_member_can_rejoin(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "p1")
        registry.remove_dao_member(ADMIN, "p1")
        registry.add_dao_member(ADMIN, "p1")
        assert registry.check_is_member("p1")
        assert registry.get_current_member_count() == 1

    def test_removed_key_stays_present_as_false(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "p1")
        registry.remove_dao_member(ADMIN, "p1")
        flags = registry.to_records()["store"]["flags"]
        assert flags == {"p1": False}

    def test_count_matches_flags_after_mixed_sequence(
        self, registry: MembershipRegistry,
    ) -> None:
        ops = [
            ("add", "a"), ("add", "b"), ("add", "c"), ("remove", "b"),
            ("add", "d"), ("remove", "a"), ("add", "b"), ("remove", "d"),
        ]
        for op, principal in ops:
            if op == "add":
                registry.add_dao_member(ADMIN, principal)
            else:
                registry.remove_dao_member(ADMIN, principal)
            assert registry.get_current_member_count() == _active_flag_count(registry)
        assert registry.get_current_member_count() == 2

    def test_failed_operations_leave_count_consistent(
        self, registry: MembershipRegistry,
    ) -> None:
        registry.add_dao_member(ADMIN, "a")
        for call in (
            lambda: registry.add_dao_member(ADMIN, "a"),
            lambda: registry.remove_dao_member(ADMIN, "zzz"),
            lambda: registry.add_dao_member("mallory", "b"),
        ):
            with pytest.raises(ValueError):
                call()
        assert registry.get_current_member_count() == _active_flag_count(registry) == 1


# ==================================================================
# Shape checks
# ==================================================================

class TestShapeChecks:

    def test_admin_cannot_add_self(self, registry: MembershipRegistry) -> None:
        with pytest.raises(InvalidUser):
            registry.add_dao_member(ADMIN, ADMIN)
        assert not registry.check_is_member(ADMIN)

    def test_self_check_runs_before_admin_gate(
        self, registry: MembershipRegistry,
    ) -> None:
        """A non-admin targeting themselves sees InvalidUser, not NotAdmin."""
        with pytest.raises(InvalidUser):
            registry.add_dao_member("mallory", "mallory")
        with pytest.raises(InvalidUser):
            registry.remove_dao_member("mallory", "mallory")

    def test_blank_principal_rejected(self, registry: MembershipRegistry) -> None:
        with pytest.raises(InvalidUser):
            registry.add_dao_member(ADMIN, "   ")
        assert registry.get_current_member_count() == 0

    def test_error_kind_is_exposed(self, registry: MembershipRegistry) -> None:
        with pytest.raises(InvalidUser) as exc_info:
            registry.add_dao_member(ADMIN, ADMIN)
        assert exc_info.value.kind == RegistryErrorKind.INVALID_USER


# ==================================================================
# Admin gate
# ==================================================================

class TestAdminGate:
    """Non-admin callers always fail with NotAdmin on gated operations."""

    @pytest.mark.parametrize("operation", [
        lambda r: r.add_dao_member("mallory", "p1"),
        lambda r: r.remove_dao_member("mallory", "p1"),
        lambda r: r.set_member_limit("mallory", 10),
        lambda r: r.set_max_members("mallory", 0),
        lambda r: r.optimize_member_limit("mallory", 10),
        lambda r: r.reset_member_count("mallory"),
        lambda r: r.reset_dao_system("mallory"),
        lambda r: r.batch_add_members("mallory", ["x", "y"]),
        lambda r: r.batch_remove_members("mallory", ["p1"]),
        lambda r: r.toggle_pause("mallory"),
        lambda r: r.clear_member_at_index("mallory", 0),
    ])
    def test_non_admin_rejected(self, operation) -> None:
        registry = MembershipRegistry(ADMIN)
        registry.add_dao_member(ADMIN, "p1")
        before = registry.to_records()
        with pytest.raises(NotAdmin):
            operation(registry)
        assert registry.to_records() == before

    def test_gate_runs_before_limit_validation(self, registry: MembershipRegistry) -> None:
        """An invalid limit from a non-admin still reports NotAdmin."""
        with pytest.raises(NotAdmin):
            registry.set_member_limit("mallory", 0)

    def test_gate_runs_before_member_validation(self, registry: MembershipRegistry) -> None:
        with pytest.raises(NotAdmin):
            registry.remove_dao_member("mallory", "never-added")

    def test_member_cannot_act_as_admin(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "bob")
        with pytest.raises(NotAdmin):
            registry.add_dao_member("bob", "carol")


# ==================================================================
# Capacity
# ==================================================================

class TestCapacity:

    def test_limit_two_scenario(self) -> None:
        registry = _limited(2)
        registry.add_dao_member(ADMIN, "p1")
        assert registry.get_current_member_count() == 1
        registry.add_dao_member(ADMIN, "p2")
        assert registry.get_current_member_count() == 2
        with pytest.raises(MemberLimitReached):
            registry.add_dao_member(ADMIN, "p3")
        assert registry.get_current_member_count() == 2
        assert not registry.check_is_member("p3")

    def test_full_and_remaining(self) -> None:
        registry = _limited(3)
        registry.add_dao_member(ADMIN, "p1")
        assert registry.get_remaining_slots() == 2
        assert not registry.is_full()
        registry.add_dao_member(ADMIN, "p2")
        registry.add_dao_member(ADMIN, "p3")
        assert registry.get_remaining_slots() == 0
        assert registry.is_full()

    def test_already_member_checked_before_limit(self) -> None:
        registry = _limited(1)
        registry.add_dao_member(ADMIN, "p1")
        with pytest.raises(AlreadyMember):
            registry.add_dao_member(ADMIN, "p1")

    def test_threshold_queries(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "p1")
        registry.add_dao_member(ADMIN, "p2")
        assert registry.has_at_least(2)
        assert not registry.has_at_least(3)
        assert registry.exceeds(1)
        assert not registry.exceeds(2)


# ==================================================================
# Limits
# ==================================================================

class TestLimits:

    def test_set_member_limit(self, registry: MembershipRegistry) -> None:
        previous = registry.set_member_limit(ADMIN, 5)
        assert previous == DEFAULT_MAX_MEMBERS
        assert registry.get_max_members() == 5

    def test_zero_limit_rejected(self, registry: MembershipRegistry) -> None:
        with pytest.raises(InvalidLimit):
            registry.set_member_limit(ADMIN, 0)
        assert registry.get_max_members() == DEFAULT_MAX_MEMBERS

    def test_negative_limit_rejected(self, registry: MembershipRegistry) -> None:
        with pytest.raises(InvalidLimit):
            registry.set_max_members(ADMIN, -3)

    def test_aliases_share_semantics(self, registry: MembershipRegistry) -> None:
        registry.set_max_members(ADMIN, 7)
        assert registry.get_max_members() == 7
        registry.optimize_member_limit(ADMIN, 9)
        assert registry.get_max_members() == 9

    def test_shrink_below_count_blocks_adds(self) -> None:
        registry = _limited(5)
        for p in ("a", "b", "c"):
            registry.add_dao_member(ADMIN, p)
        registry.set_member_limit(ADMIN, 1)
        assert registry.get_current_member_count() == 3
        assert registry.get_remaining_slots() == 0  # clamped, not -2
        with pytest.raises(MemberLimitReached):
            registry.add_dao_member(ADMIN, "d")
        registry.remove_dao_member(ADMIN, "a")
        registry.remove_dao_member(ADMIN, "b")
        registry.remove_dao_member(ADMIN, "c")
        registry.add_dao_member(ADMIN, "d")
        assert registry.check_is_member("d")


class TestConditionalLimit:

    def test_open_to_any_caller_by_default(self, registry: MembershipRegistry) -> None:
        registry.update_limit_conditionally("anyone", 10)
        assert registry.get_max_members() == 10

    def test_rejects_limit_not_above_count(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "p1")
        registry.add_dao_member(ADMIN, "p2")
        with pytest.raises(InvalidLimit):
            registry.update_limit_conditionally(ADMIN, 2)
        with pytest.raises(InvalidLimit):
            registry.update_limit_conditionally(ADMIN, 1)
        registry.update_limit_conditionally(ADMIN, 3)
        assert registry.get_max_members() == 3

    def test_zero_rejected_on_empty_registry(self, registry: MembershipRegistry) -> None:
        with pytest.raises(InvalidLimit):
            registry.update_limit_conditionally(ADMIN, 0)

    def test_policy_can_gate_it(self) -> None:
        registry = MembershipRegistry(ADMIN, {"conditional_limit_requires_admin": True})
        with pytest.raises(NotAdmin):
            registry.update_limit_conditionally("anyone", 10)
        registry.update_limit_conditionally(ADMIN, 10)
        assert registry.get_max_members() == 10


# ==================================================================
# Counter override
# ==================================================================

class TestResetMemberCount:

    def test_zeroes_counter_only(self, registry: MembershipRegistry) -> None:
        registry.add_dao_member(ADMIN, "p1")
        registry.add_dao_member(ADMIN, "p2")
        registry.reset_member_count(ADMIN)
        assert registry.get_current_member_count() == 0
        assert registry.check_is_member("p1")
        assert registry.check_is_member("p2")

    def test_remove_after_override_saturates_at_zero(
        self, registry: MembershipRegistry,
    ) -> None:
        registry.add_dao_member(ADMIN, "p1")
        registry.reset_member_count(ADMIN)
        registry.remove_dao_member(ADMIN, "p1")
        assert registry.get_current_member_count() == 0
        assert not registry.check_is_member("p1")


# ==================================================================
# Pause flag
# ==================================================================

class TestPause:

    def test_toggle_flips_flag(self, registry: MembershipRegistry) -> None:
        assert registry.toggle_pause(ADMIN) is True
        assert registry.is_paused()
        assert registry.toggle_pause(ADMIN) is False
        assert not registry.is_paused()

    def test_pause_is_inert_by_default(self, registry: MembershipRegistry) -> None:
        registry.toggle_pause(ADMIN)
        registry.add_dao_member(ADMIN, "p1")
        registry.set_member_limit(ADMIN, 4)
        assert registry.check_is_member("p1")

    def test_enforced_pause_blocks_mutations(self) -> None:
        registry = MembershipRegistry(ADMIN, {"enforce_pause": True})
        registry.add_dao_member(ADMIN, "p1")
        registry.add_dao_member(ADMIN, "p2")
        registry.toggle_pause(ADMIN)
        for call in (
            lambda: registry.add_dao_member(ADMIN, "p3"),
            lambda: registry.remove_dao_member(ADMIN, "p1"),
            lambda: registry.batch_add_members(ADMIN, ["p4"]),
            lambda: registry.set_member_limit(ADMIN, 5),
            lambda: registry.update_limit_conditionally(ADMIN, 50),
            lambda: registry.reset_dao_system(ADMIN),
            lambda: registry.delegate_votes("p1", "p2"),
            lambda: registry.revoke_delegation("p1"),
        ):
            with pytest.raises(RegistryPaused):
                call()
        assert registry.get_current_member_count() == 2
        registry.toggle_pause(ADMIN)
        registry.add_dao_member(ADMIN, "p3")
        assert registry.get_current_member_count() == 3

    def test_enforced_pause_still_checks_admin_first(self) -> None:
        registry = MembershipRegistry(ADMIN, {"enforce_pause": True})
        registry.toggle_pause(ADMIN)
        with pytest.raises(NotAdmin):
            registry.add_dao_member("mallory", "p1")


# ==================================================================
# Persistence
# ==================================================================

class TestRecords:

    def test_round_trip(self) -> None:
        registry = _limited(10)
        registry.batch_add_members(ADMIN, ["a", "b", "c"])
        registry.remove_dao_member(ADMIN, "b")
        registry.delegate_votes("a", "c")
        registry.toggle_pause(ADMIN)

        restored = MembershipRegistry.from_records({}, registry.to_records())
        assert restored.get_dao_admin() == ADMIN
        assert restored.get_max_members() == 10
        assert restored.get_current_member_count() == 2
        assert restored.check_is_member("a")
        assert not restored.check_is_member("b")
        assert restored.get_delegate("a") == "c"
        assert restored.is_paused()
        assert restored.index_of("c") == 2
        assert restored.to_records() == registry.to_records()

    def test_rejects_stale_index_entry(self) -> None:
        records = MembershipRegistry(ADMIN).to_records()
        records["store"] = {
            "flags": {"a": False},
            "member_count": 0,
            "index": {"0": "a"},
        }
        with pytest.raises(ValueError, match="inactive"):
            MembershipRegistry.from_records({}, records)
