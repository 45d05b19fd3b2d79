"""Registry policy invariant checks.

Returns human-readable violations rather than raising, so the CLI and
the standalone tool can report every problem in one pass.
"""

from __future__ import annotations

from typing import Any


def check_registry_policy(policy: dict[str, Any]) -> list[str]:
    """Validate a registry policy document. Empty list means it passes."""
    errors: list[str] = []
    registry = policy.get("registry")
    if not isinstance(registry, dict):
        return ["Policy missing 'registry' section"]

    bounds = {}
    for key in ("default_max_members", "reset_sweep_size", "max_batch_add", "max_batch_remove"):
        value = registry.get(key)
        if value is None:
            errors.append(f"registry.{key} is missing")
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            errors.append(f"registry.{key} must be a positive integer, got {value!r}")
            continue
        bounds[key] = value

    if "max_batch_add" in bounds and "default_max_members" in bounds:
        if bounds["max_batch_add"] > bounds["default_max_members"]:
            errors.append(
                "registry.max_batch_add cannot exceed default_max_members"
            )

    if "max_batch_remove" in bounds and "max_batch_add" in bounds:
        if bounds["max_batch_remove"] > bounds["max_batch_add"]:
            errors.append("registry.max_batch_remove cannot exceed max_batch_add")

    for key in ("enforce_pause", "conditional_limit_requires_admin"):
        if key in registry and not isinstance(registry[key], bool):
            errors.append(f"registry.{key} must be a boolean")

    return errors
