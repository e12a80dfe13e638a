"""Validators shared across medcore models."""

from django.core.exceptions import ValidationError

SCALAR_TYPES = (str, int, float, bool, type(None))


def validate_extension_map(value):
    """Validate a typed extension map: string keys, scalar values.

    Replaces free-form metadata blobs. Nested objects and lists are
    rejected so every stored extension stays queryable and typed.
    """
    if not isinstance(value, dict):
        raise ValidationError("Extension map must be a JSON object")

    errors = []
    for key, item in value.items():
        if not isinstance(key, str) or not key:
            errors.append(f"Extension key {key!r} must be a non-empty string")
        if not isinstance(item, SCALAR_TYPES):
            errors.append(
                f"Extension '{key}' must be a scalar, got {type(item).__name__}"
            )

    if errors:
        raise ValidationError(errors)
