"""Delegation book: who has delegated their vote to whom.

Records relationships only. There is no tally, no quorum, and no cycle
detection; a principal holds at most one outgoing delegation and a new
delegation replaces the old one. Membership checks are the registry's
job, so the book itself accepts any pair.
"""

from __future__ import annotations

from typing import Optional

from dao_membership.models.errors import NotMember


class DelegationBook:

    def __init__(self) -> None:
        self._delegations: dict[str, str] = {}

    def delegate(self, delegator: str, delegate: str) -> Optional[str]:
        """Record a delegation. Returns the delegate it replaced, if any."""
        previous = self._delegations.get(delegator)
        self._delegations[delegator] = delegate
        return previous

    def revoke(self, delegator: str) -> str:
        """Remove a delegation and return the delegate it pointed at.

        Raises:
            NotMember: delegator has no delegation on record.
        """
        if delegator not in self._delegations:
            raise NotMember(f"{delegator} has no delegation to revoke")
        return self._delegations.pop(delegator)

    def delegate_of(self, delegator: str) -> Optional[str]:
        return self._delegations.get(delegator)

    def delegators_of(self, delegate: str) -> list[str]:
        return sorted(d for d, to in self._delegations.items() if to == delegate)

    @property
    def count(self) -> int:
        return len(self._delegations)

    def to_records(self) -> dict[str, str]:
        return dict(self._delegations)

    @classmethod
    def from_records(cls, data: dict[str, str]) -> DelegationBook:
        book = cls()
        book._delegations = {str(k): str(v) for k, v in data.items()}
        return book
