"""RFC 7386 JSON merge patch computation and application."""

import copy
from typing import Any


def create_merge_patch(before: Any, after: Any) -> Any:
    """Compute a merge patch turning ``before`` into ``after``.

    Returns an empty dict when nothing changed. Lists are replaced whole.
    """
    if not isinstance(before, dict) or not isinstance(after, dict):
        return copy.deepcopy(after)

    patch: dict[str, Any] = {}
    for key in before.keys() - after.keys():
        patch[key] = None
    for key, value in after.items():
        if key not in before:
            patch[key] = copy.deepcopy(value)
        elif before[key] != value:
            if isinstance(before[key], dict) and isinstance(value, dict):
                patch[key] = create_merge_patch(before[key], value)
            else:
                patch[key] = copy.deepcopy(value)
    return patch


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Apply a merge patch, returning a new value."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result
