"""Membership store: membership flags, authoritative count, enumeration index.

The three structures are owned together so that no caller can update one
without the others:

- flags: principal -> bool. Removal writes False; the key stays present.
- member_count: the source of truth for count queries. Never recomputed
  by scanning the flags.
- index: ordinal -> principal (plus the reverse map). Every add assigns
  the lowest free ordinal, every remove frees it, so the reset sweep can
  enumerate members by position.

Invariants (between operations):
- member_count == number of principals flagged True, except after an
  explicit reset_count() override.
- Every ordinal in the index points at a principal flagged True.
- Each principal holds at most one ordinal.

The store performs no authorization and no locking; the registry
engine does both.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Optional

from dao_membership.models.errors import (
    AlreadyMember,
    MemberLimitReached,
    NotMember,
)


@dataclass(frozen=True)
class StoreSnapshot:
    """Point-in-time copy of the whole store, used for rollback."""
    flags: dict[str, bool] = field(default_factory=dict)
    member_count: int = 0
    index: dict[int, str] = field(default_factory=dict)


class MembershipStore:
    """Paired map/counter/index storage with atomic co-update."""

    def __init__(self) -> None:
        self._flags: dict[str, bool] = {}
        self._member_count = 0
        self._index: dict[int, str] = {}
        self._ordinals: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_active(self, principal: str) -> bool:
        return self._flags.get(principal, False)

    @property
    def member_count(self) -> int:
        return self._member_count

    def member_at(self, ordinal: int) -> Optional[str]:
        return self._index.get(ordinal)

    def index_of(self, principal: str) -> Optional[int]:
        return self._ordinals.get(principal)

    def indexed_members(self) -> list[str]:
        """Indexed principals in ordinal order."""
        return [self._index[i] for i in sorted(self._index)]

    @property
    def index_size(self) -> int:
        return len(self._index)

    def known_principals(self) -> int:
        """Count of every key ever written, including removed members."""
        return len(self._flags)

    # ------------------------------------------------------------------
    # Paired mutators
    # ------------------------------------------------------------------

    def add(self, principal: str, limit: int) -> int:
        """Flag a principal active, bump the count, and index it.

        Returns the ordinal assigned to the principal.

        Raises:
            AlreadyMember: principal is already active.
            MemberLimitReached: member_count >= limit.
        """
        if self.is_active(principal):
            raise AlreadyMember(f"{principal} is already a member")
        if self._member_count >= limit:
            raise MemberLimitReached(
                f"Member limit reached ({self._member_count}/{limit})"
            )
        ordinal = self._lowest_free_ordinal()
        self._flags[principal] = True
        self._member_count += 1
        self._index[ordinal] = principal
        self._ordinals[principal] = ordinal
        return ordinal

    def remove(self, principal: str) -> None:
        """Flag a principal inactive, drop the count, and free its ordinal.

        The count saturates at zero so a remove after reset_count() can
        never drive it negative.

        Raises:
            NotMember: principal is not active.
        """
        if not self.is_active(principal):
            raise NotMember(f"{principal} is not a member")
        self._flags[principal] = False
        self._member_count = max(0, self._member_count - 1)
        ordinal = self._ordinals.pop(principal, None)
        if ordinal is not None:
            del self._index[ordinal]

    def clear_at(self, ordinal: int) -> str:
        """Remove whichever member holds ``ordinal``.

        Raises:
            NotMember: the slot is empty.
        """
        principal = self._index.get(ordinal)
        if principal is None:
            raise NotMember(f"No member at index {ordinal}")
        self.remove(principal)
        return principal

    def reset_count(self) -> None:
        """Zero the counter without touching flags or index."""
        self._member_count = 0

    def sweep(self, pass_size: int) -> list[str]:
        """Clear the whole index, deactivate its members, zero the count.

        Ordinals are visited in passes of ``pass_size`` slots, starting at
        0, until the highest occupied ordinal has been covered. The index
        can outgrow a single pass after a counter override or a raised
        limit.

        Returns the principals that were cleared, in ordinal order.
        """
        if pass_size <= 0:
            raise ValueError(f"Sweep pass size must be positive, got {pass_size}")
        cleared: list[str] = []
        end = max(self._index, default=-1) + 1
        for start in range(0, end, pass_size):
            for ordinal in range(start, min(start + pass_size, end)):
                principal = self._index.pop(ordinal, None)
                if principal is None:
                    continue
                self._flags[principal] = False
                self._ordinals.pop(principal, None)
                cleared.append(principal)
        self._member_count = 0
        return cleared

    # ------------------------------------------------------------------
    # Snapshot / restore
    # ------------------------------------------------------------------

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            flags=dict(self._flags),
            member_count=self._member_count,
            index=dict(self._index),
        )

    def restore(self, snapshot: StoreSnapshot) -> None:
        self._flags = dict(snapshot.flags)
        self._member_count = snapshot.member_count
        self._index = dict(snapshot.index)
        self._ordinals = {p: i for i, p in self._index.items()}

    def to_records(self) -> dict[str, Any]:
        """Serialise the store for persistence. Ordinals become string keys."""
        return {
            "flags": dict(self._flags),
            "member_count": self._member_count,
            "index": {str(i): p for i, p in sorted(self._index.items())},
        }

    @classmethod
    def from_records(cls, data: dict[str, Any]) -> MembershipStore:
        """Restore a store from persistence records.

        Raises ValueError if an index entry points at an inactive
        principal or a principal appears at two ordinals.
        """
        flags = {str(p): bool(v) for p, v in data.get("flags", {}).items()}
        index = {int(i): str(p) for i, p in data.get("index", {}).items()}
        member_count = int(data.get("member_count", 0))
        if member_count < 0:
            raise ValueError(f"Member count cannot be negative: {member_count}")
        if len(set(index.values())) != len(index):
            raise ValueError("Principal appears at more than one index ordinal")
        for ordinal, principal in index.items():
            if ordinal < 0:
                raise ValueError(f"Negative index ordinal: {ordinal}")
            if not flags.get(principal, False):
                raise ValueError(
                    f"Index ordinal {ordinal} points at inactive principal "
                    f"{principal}"
                )
        store = cls()
        store.restore(StoreSnapshot(
            flags=flags, member_count=member_count, index=index,
        ))
        return store

    def _lowest_free_ordinal(self) -> int:
        return next(i for i in itertools.count() if i not in self._index)
