"""Precondition checks for repair operations.

Validation functions raise specific exceptions from the exceptions module
rather than returning boolean values, making the hard gates explicit.

Example:
    from dbclone_repair.storage.validation import validate_parent_reachable

    try:
        validate_parent_reachable(plan.image_location)
    except UnreachableParentError:
        # Skip this clone
        pass
"""

from __future__ import annotations

import os

from .exceptions import UnreachableParentError


def is_path_reachable(location: str) -> bool:
    """Check whether a local path or UNC share path can be reached."""
    if not location:
        return False
    try:
        return os.path.exists(location)
    except (OSError, ValueError):
        return False


def validate_parent_reachable(image_location: str) -> None:
    """Validate that a clone's parent image can be reached.

    Raises:
        UnreachableParentError: If the image path does not exist or cannot be
            accessed
    """
    if not is_path_reachable(image_location):
        raise UnreachableParentError(image_location)
