from __future__ import annotations

from typing import Any

# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request payloads.

    Accepts ints (not bools) and plain digit strings. Rejects floats,
    decimal strings and scientific notation.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")

    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")

    raise ValidationError(f"{field} must be an integer")


def require_positive_int(value: Any, field: str) -> int:
    result = coerce_int(value, field)
    if result <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return result


def require_amount_cents(value: Any, field: str) -> int:
    """Non-negative cents amount within MAX_AMOUNT_CENTS."""
    result = coerce_int(value, field)
    if result < 0:
        raise ValidationError(f"{field} cannot be negative")
    if result > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return result


def optional_str(value: Any, field: str, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if not stripped:
        return None
    if len(stripped) > max_length:
        raise ValidationError(f"{field} exceeds {max_length} characters")
    return stripped
