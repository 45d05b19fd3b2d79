"""Membership registry engine: admin-gated, capacity-bounded DAO membership.

The registry is the only component with state-consistency obligations:
a running member count that must match the active flags, an enumeration
index that must track membership, and batch operations that must be
all-or-nothing.

Architecture:
- MembershipStore owns flags, count and index and only exposes paired
  mutators.
- AccessGate holds the admin identity captured at construction.
- DelegationBook records delegation relationships.
- MembershipRegistry composes them, serialises every public operation
  behind one lock, and restores a store snapshot when a batch fails.
- The service layer bridges the registry with the audit log and the
  state store. The registry never writes events itself.

Authorization rules:
- Every mutating operation is admin-gated, except delegation (member
  operations) and update_limit_conditionally, which is open unless
  policy sets conditional_limit_requires_admin.
- add_dao_member / remove_dao_member reject a target equal to the caller
  before the admin gate runs.

Pause flag:
- Inert unless policy sets enforce_pause. When enforced, every mutation
  except toggle_pause raises RegistryPaused while the flag is set.
"""

from __future__ import annotations

import functools
import threading
from typing import Any, Callable, Iterable, Optional, TypeVar

from dao_membership.models.errors import (
    BatchTooLarge,
    InvalidLimit,
    InvalidUser,
    NotMember,
    RegistryPaused,
)
from dao_membership.registry.access import AccessGate
from dao_membership.registry.delegation import DelegationBook
from dao_membership.registry.store import MembershipStore


# Defaults used when the policy omits a key
DEFAULT_MAX_MEMBERS = 100
RESET_SWEEP_SIZE = 100
MAX_BATCH_ADD = 100
MAX_BATCH_REMOVE = 10

_F = TypeVar("_F", bound=Callable[..., Any])


def _locked(method: _F) -> _F:
    """Run a registry method inside the instance's critical section."""
    @functools.wraps(method)
    def wrapper(self: MembershipRegistry, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper  # type: ignore[return-value]


class MembershipRegistry:
    """Capacity-bounded membership ledger with a single admin.

    Usage:
        registry = MembershipRegistry("alice", config)
        registry.add_dao_member("alice", "bob")
        registry.batch_add_members("alice", ["carol", "dave"])
        registry.check_is_member("bob")  # True

    Thread-safety: every public method holds the registry lock for its
    full duration, so the count/flag/index triple is never observed torn
    and batches are indivisible with respect to other callers.
    """

    def __init__(self, admin_id: str, config: Optional[dict[str, Any]] = None) -> None:
        """Initialise a registry owned by ``admin_id``.

        Args:
            admin_id: Identity of the constructing caller. Fixed forever.
            config: Registry policy containing:
                - default_max_members (default 100)
                - reset_sweep_size (default 100)
                - max_batch_add (default 100)
                - max_batch_remove (default 10)
                - enforce_pause (default False)
                - conditional_limit_requires_admin (default False)

        Raises:
            ValueError: If admin_id is blank or a policy bound is not positive.
        """
        config = config or {}
        self._config = config
        self._gate = AccessGate(admin_id)
        self._store = MembershipStore()
        self._delegations = DelegationBook()
        self._lock = threading.RLock()
        self._paused = False

        self._max_member_limit = int(config.get("default_max_members", DEFAULT_MAX_MEMBERS))
        self._sweep_size = int(config.get("reset_sweep_size", RESET_SWEEP_SIZE))
        self._max_batch_add = int(config.get("max_batch_add", MAX_BATCH_ADD))
        self._max_batch_remove = int(config.get("max_batch_remove", MAX_BATCH_REMOVE))
        self._enforce_pause = bool(config.get("enforce_pause", False))
        self._gate_conditional_limit = bool(
            config.get("conditional_limit_requires_admin", False)
        )

        for key, value in (
            ("default_max_members", self._max_member_limit),
            ("reset_sweep_size", self._sweep_size),
            ("max_batch_add", self._max_batch_add),
            ("max_batch_remove", self._max_batch_remove),
        ):
            if value <= 0:
                raise ValueError(f"{key} must be positive, got {value}")

    @classmethod
    def from_records(
        cls,
        config: dict[str, Any],
        data: dict[str, Any],
    ) -> MembershipRegistry:
        """Restore registry state from persistence records."""
        registry = cls(data["admin_id"], config)
        limit = int(data.get("max_member_limit", registry._max_member_limit))
        if limit <= 0:
            raise ValueError(f"Stored member limit must be positive, got {limit}")
        registry._max_member_limit = limit
        registry._paused = bool(data.get("is_paused", False))
        registry._store = MembershipStore.from_records(data.get("store", {}))
        registry._delegations = DelegationBook.from_records(
            data.get("delegations", {})
        )
        return registry

    # ------------------------------------------------------------------
    # Single-member mutations (admin-gated)
    # ------------------------------------------------------------------

    @_locked
    def add_dao_member(self, caller: str, new_member: str) -> int:
        """Add a member and return the index ordinal it was assigned.

        Raises:
            InvalidUser: target is blank or equals the caller.
            NotAdmin: caller is not the admin.
            RegistryPaused: paused with enforcement on.
            AlreadyMember / MemberLimitReached: from the store.
        """
        self._check_target_shape(caller, new_member)
        self._gate.require_admin(caller)
        self._require_not_paused()
        return self._store.add(new_member, self._max_member_limit)

    @_locked
    def remove_dao_member(self, caller: str, member: str) -> None:
        self._check_target_shape(caller, member)
        self._gate.require_admin(caller)
        self._require_not_paused()
        self._store.remove(member)

    @_locked
    def clear_member_at_index(self, caller: str, ordinal: int) -> str:
        """Remove the member holding ``ordinal`` and return who it was."""
        self._gate.require_admin(caller)
        self._require_not_paused()
        return self._store.clear_at(ordinal)

    # ------------------------------------------------------------------
    # Limits and counters
    # ------------------------------------------------------------------

    @_locked
    def set_member_limit(self, caller: str, new_limit: int) -> int:
        """Set the member limit and return the previous one.

        Shrinking below the current count is allowed; it blocks further
        adds until membership drops.
        """
        self._gate.require_admin(caller)
        self._require_not_paused()
        if new_limit <= 0:
            raise InvalidLimit(f"Member limit must be positive, got {new_limit}")
        previous = self._max_member_limit
        self._max_member_limit = new_limit
        return previous

    set_max_members = set_member_limit
    optimize_member_limit = set_member_limit

    @_locked
    def update_limit_conditionally(self, caller: str, new_limit: int) -> int:
        """Set the limit only if it exceeds the current count.

        Open to any caller unless policy gates it.
        """
        if self._gate_conditional_limit:
            self._gate.require_admin(caller)
        self._require_not_paused()
        if self._store.member_count >= new_limit:
            raise InvalidLimit(
                f"New limit {new_limit} must exceed current member count "
                f"{self._store.member_count}"
            )
        previous = self._max_member_limit
        self._max_member_limit = new_limit
        return previous

    @_locked
    def reset_member_count(self, caller: str) -> None:
        """Zero the counter without touching membership flags.

        Administrative override: the count no longer matches the flags
        afterwards.
        """
        self._gate.require_admin(caller)
        self._require_not_paused()
        self._store.reset_count()

    @_locked
    def reset_dao_system(self, caller: str) -> list[str]:
        """Sweep the enumeration index, deactivate every indexed member,
        and zero the count. Returns the principals cleared.

        The sweep walks the index in passes of reset_sweep_size ordinals
        until every occupied slot is cleared.
        """
        self._gate.require_admin(caller)
        self._require_not_paused()
        return self._store.sweep(self._sweep_size)

    # ------------------------------------------------------------------
    # Batch operations (admin-gated, all-or-nothing)
    # ------------------------------------------------------------------

    @_locked
    def batch_add_members(self, caller: str, principals: Iterable[str]) -> list[int]:
        """Add principals in order; the first failure rolls back the batch.

        Returns the ordinals assigned, in input order.
        """
        self._gate.require_admin(caller)
        self._require_not_paused()
        batch = list(principals)
        if len(batch) > self._max_batch_add:
            raise BatchTooLarge(
                f"Batch add of {len(batch)} exceeds limit {self._max_batch_add}"
            )
        for principal in batch:
            self._check_principal(principal)
        snapshot = self._store.snapshot()
        try:
            ordinals = []
            for principal in batch:
                ordinals.append(self._store.add(principal, self._max_member_limit))
        except Exception:
            self._store.restore(snapshot)
            raise
        return ordinals

    @_locked
    def batch_remove_members(self, caller: str, principals: Iterable[str]) -> int:
        """Remove principals in order; the first failure rolls back the batch.

        Returns the number removed.
        """
        self._gate.require_admin(caller)
        self._require_not_paused()
        batch = list(principals)
        if len(batch) > self._max_batch_remove:
            raise BatchTooLarge(
                f"Batch remove of {len(batch)} exceeds limit "
                f"{self._max_batch_remove}"
            )
        for principal in batch:
            self._check_principal(principal)
        snapshot = self._store.snapshot()
        try:
            for principal in batch:
                self._store.remove(principal)
        except Exception:
            self._store.restore(snapshot)
            raise
        return len(batch)

    # ------------------------------------------------------------------
    # Auxiliary state
    # ------------------------------------------------------------------

    @_locked
    def toggle_pause(self, caller: str) -> bool:
        """Flip the pause flag and return its new value."""
        self._gate.require_admin(caller)
        self._paused = not self._paused
        return self._paused

    @_locked
    def delegate_votes(self, caller: str, delegate: str) -> Optional[str]:
        """Record caller's delegation to ``delegate``.

        Both must be active members. Self-delegation is allowed.
        Returns the delegate that was replaced, if any.
        """
        self._require_not_paused()
        if not self._store.is_active(caller):
            raise NotMember(f"Caller {caller} is not a member")
        if not self._store.is_active(delegate):
            raise NotMember(f"Delegate {delegate} is not a member")
        return self._delegations.delegate(caller, delegate)

    @_locked
    def revoke_delegation(self, caller: str) -> str:
        self._require_not_paused()
        return self._delegations.revoke(caller)

    # ------------------------------------------------------------------
    # Read-only queries (no authorization)
    # ------------------------------------------------------------------

    @_locked
    def check_is_member(self, principal: str) -> bool:
        return self._store.is_active(principal)

    is_active_member = check_is_member

    @_locked
    def check_is_not_member(self, principal: str) -> bool:
        return not self._store.is_active(principal)

    def get_dao_admin(self) -> str:
        return self._gate.admin_id

    @_locked
    def get_max_members(self) -> int:
        return self._max_member_limit

    @_locked
    def get_current_member_count(self) -> int:
        return self._store.member_count

    @_locked
    def get_remaining_slots(self) -> int:
        """Free capacity, clamped at zero when the limit sits below the count."""
        return max(0, self._max_member_limit - self._store.member_count)

    @_locked
    def is_full(self) -> bool:
        return self._store.member_count >= self._max_member_limit

    @_locked
    def is_empty(self) -> bool:
        return self._store.member_count == 0

    @_locked
    def has_at_least(self, threshold: int) -> bool:
        return self._store.member_count >= threshold

    @_locked
    def exceeds(self, threshold: int) -> bool:
        return self._store.member_count > threshold

    @_locked
    def is_paused(self) -> bool:
        return self._paused

    @_locked
    def get_delegate(self, principal: str) -> Optional[str]:
        return self._delegations.delegate_of(principal)

    @_locked
    def get_delegators(self, delegate: str) -> list[str]:
        return self._delegations.delegators_of(delegate)

    @_locked
    def delegation_count(self) -> int:
        return self._delegations.count

    @_locked
    def member_at_index(self, ordinal: int) -> Optional[str]:
        return self._store.member_at(ordinal)

    @_locked
    def index_of(self, principal: str) -> Optional[int]:
        return self._store.index_of(principal)

    @_locked
    def active_members(self) -> list[str]:
        """Indexed members in ordinal order."""
        return self._store.indexed_members()

    @property
    def lock(self) -> threading.RLock:
        """The registry's reentrant lock.

        Holding it makes a sequence of registry calls indivisible with
        respect to every other caller, including direct registry users.
        """
        return self._lock

    @_locked
    def summary(self) -> dict[str, Any]:
        """Snapshot of the registry's scalar state."""
        return {
            "admin": self._gate.admin_id,
            "member_count": self._store.member_count,
            "max_members": self._max_member_limit,
            "remaining_slots": max(
                0, self._max_member_limit - self._store.member_count
            ),
            "indexed_members": self._store.index_size,
            "known_principals": self._store.known_principals(),
            "delegations": self._delegations.count,
            "is_paused": self._paused,
            "enforce_pause": self._enforce_pause,
        }

    @_locked
    def to_records(self) -> dict[str, Any]:
        """Serialise registry state for persistence."""
        return {
            "admin_id": self._gate.admin_id,
            "max_member_limit": self._max_member_limit,
            "is_paused": self._paused,
            "store": self._store.to_records(),
            "delegations": self._delegations.to_records(),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @_locked
    def snapshot_state(self) -> dict[str, Any]:
        """Full in-memory copy used by the service layer for rollback."""
        return {
            "store": self._store.snapshot(),
            "delegations": self._delegations.to_records(),
            "max_member_limit": self._max_member_limit,
            "paused": self._paused,
        }

    @_locked
    def restore_state(self, state: dict[str, Any]) -> None:
        self._store.restore(state["store"])
        self._delegations = DelegationBook.from_records(state["delegations"])
        self._max_member_limit = state["max_member_limit"]
        self._paused = state["paused"]

    def _require_not_paused(self) -> None:
        if self._enforce_pause and self._paused:
            raise RegistryPaused("Registry is paused")

    @staticmethod
    def _check_principal(principal: str) -> None:
        if not isinstance(principal, str) or not principal.strip():
            raise InvalidUser(f"Invalid principal: {principal!r}")

    def _check_target_shape(self, caller: str, target: str) -> None:
        self._check_principal(target)
        if target == caller:
            raise InvalidUser(f"Caller {caller} cannot target themselves")
