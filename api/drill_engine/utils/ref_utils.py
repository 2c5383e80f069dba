"""
Reference resolution helpers.
"""
from typing import Any

from drill_engine.core.exceptions import ValidationError


def resolve_id(ref: Any) -> int:
    """
    Resolve a reference to a plain integer id.

    Callers may hand over either a loaded object (anything with an ``id`` attribute,
    or a dict with an ``id`` key) or a raw id (int or numeric string). Business logic
    only ever compares the resolved ids.

    Args:
        ref: Loaded object, dict, int or numeric string

    Returns:
        Integer id

    Raises:
        ValidationError: If the reference cannot be resolved
    """
    if ref is None:
        raise ValidationError("Missing reference")
    if isinstance(ref, bool):
        raise ValidationError(f"Invalid reference: {ref!r}")
    if isinstance(ref, int):
        return ref
    if isinstance(ref, dict):
        return resolve_id(ref.get("id"))
    if isinstance(ref, str):
        if ref.strip().isdigit():
            return int(ref.strip())
        raise ValidationError(f"Invalid reference: {ref!r}")
    if hasattr(ref, "id"):
        return resolve_id(ref.id)
    raise ValidationError(f"Invalid reference: {ref!r}")
