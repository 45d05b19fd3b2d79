"""Policy resolver: loads registry policy from the config directory.

Policy lives in ``config/registry_policy.json``. Engines never read files
themselves; they receive plain dicts from the resolver and fall back to
their own defaults for missing keys.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

POLICY_FILENAME = "registry_policy.json"

_BOOL_KEYS = ("enforce_pause", "conditional_limit_requires_admin")
_POSITIVE_INT_KEYS = (
    "default_max_members",
    "reset_sweep_size",
    "max_batch_add",
    "max_batch_remove",
)


class PolicyResolver:
    """Read-only view over the registry policy document."""

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load policy from ``config_dir``.

        Raises:
            FileNotFoundError: If the policy file is missing.
            ValueError: If the policy is malformed.
        """
        path = config_dir / POLICY_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            return cls(json.load(handle))

    @classmethod
    def default(cls) -> PolicyResolver:
        """Resolver with an empty policy; engines use their built-in defaults."""
        return cls({"registry": {}})

    @property
    def version(self) -> Optional[str]:
        return self._policy.get("version")

    def registry_config(self) -> dict[str, Any]:
        """Config dict for MembershipRegistry."""
        return dict(self._policy.get("registry", {}))

    def with_overrides(self, **overrides: Any) -> PolicyResolver:
        """Copy of this resolver with registry keys replaced."""
        registry = self.registry_config()
        registry.update(overrides)
        policy = dict(self._policy)
        policy["registry"] = registry
        return PolicyResolver(policy)

    def _validate(self) -> None:
        registry = self._policy.get("registry", {})
        if not isinstance(registry, dict):
            raise ValueError("Policy 'registry' section must be an object")
        for key in _POSITIVE_INT_KEYS:
            if key not in registry:
                continue
            value = registry[key]
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"Policy {key} must be a positive integer, got {value!r}")
        for key in _BOOL_KEYS:
            if key in registry and not isinstance(registry[key], bool):
                raise ValueError(f"Policy {key} must be a boolean, got {registry[key]!r}")
