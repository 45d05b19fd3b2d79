"""Tests for vote delegation: relationships only, no tallying."""

from __future__ import annotations

import pytest

from dao_membership.models.errors import NotMember
from dao_membership.registry.delegation import DelegationBook
from dao_membership.registry.engine import MembershipRegistry

ADMIN = "admin"


@pytest.fixture
def registry() -> MembershipRegistry:
    registry = MembershipRegistry(ADMIN)
    registry.batch_add_members(ADMIN, ["alice", "bob", "carol"])
    return registry


class TestDelegateVotes:

    def test_member_delegates_to_member(self, registry: MembershipRegistry) -> None:
        assert registry.delegate_votes("alice", "bob") is None
        assert registry.get_delegate("alice") == "bob"
        assert registry.delegation_count() == 1

    def test_non_member_caller_rejected(self, registry: MembershipRegistry) -> None:
        with pytest.raises(NotMember):
            registry.delegate_votes("mallory", "bob")
        assert registry.delegation_count() == 0
        assert registry.get_delegate("mallory") is None

    def test_non_member_delegate_rejected(self, registry: MembershipRegistry) -> None:
        with pytest.raises(NotMember):
            registry.delegate_votes("alice", "mallory")
        assert registry.get_delegate("alice") is None

    def test_self_delegation_allowed(self, registry: MembershipRegistry) -> None:
        registry.delegate_votes("alice", "alice")
        assert registry.get_delegate("alice") == "alice"

    def test_new_delegation_replaces_old(self, registry: MembershipRegistry) -> None:
        registry.delegate_votes("alice", "bob")
        assert registry.delegate_votes("alice", "carol") == "bob"
        assert registry.get_delegate("alice") == "carol"
        assert registry.delegation_count() == 1

    def test_admin_needs_membership_to_delegate(self, registry: MembershipRegistry) -> None:
        with pytest.raises(NotMember):
            registry.delegate_votes(ADMIN, "alice")

    def test_cycles_are_not_detected(self, registry: MembershipRegistry) -> None:
        registry.delegate_votes("alice", "bob")
        registry.delegate_votes("bob", "alice")
        assert registry.get_delegate("bob") == "alice"

    def test_delegators_of(self, registry: MembershipRegistry) -> None:
        registry.delegate_votes("alice", "carol")
        registry.delegate_votes("bob", "carol")
        assert registry.get_delegators("carol") == ["alice", "bob"]

    def test_delegation_survives_member_removal(
        self, registry: MembershipRegistry,
    ) -> None:
        """Delegation state is orthogonal to membership count."""
        registry.delegate_votes("alice", "bob")
        registry.remove_dao_member(ADMIN, "bob")
        assert registry.get_delegate("alice") == "bob"
        assert registry.get_current_member_count() == 2


class TestRevokeDelegation:

    def test_revoke(self, registry: MembershipRegistry) -> None:
        registry.delegate_votes("alice", "bob")
        assert registry.revoke_delegation("alice") == "bob"
        assert registry.get_delegate("alice") is None

    def test_revoke_without_delegation_fails(self, registry: MembershipRegistry) -> None:
        with pytest.raises(NotMember):
            registry.revoke_delegation("alice")

    def test_revoke_twice_fails(self, registry: MembershipRegistry) -> None:
        registry.delegate_votes("alice", "bob")
        registry.revoke_delegation("alice")
        with pytest.raises(NotMember):
            registry.revoke_delegation("alice")

    def test_former_member_can_revoke(self, registry: MembershipRegistry) -> None:
        registry.delegate_votes("alice", "bob")
        registry.remove_dao_member(ADMIN, "alice")
        assert registry.revoke_delegation("alice") == "bob"


class TestDelegationBook:

    def test_records_round_trip(self) -> None:
        book = DelegationBook()
        book.delegate("a", "b")
        book.delegate("c", "b")
        restored = DelegationBook.from_records(book.to_records())
        assert restored.delegate_of("a") == "b"
        assert restored.delegators_of("b") == ["a", "c"]
        assert restored.count == 2
