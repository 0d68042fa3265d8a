"""Input validation for vouchers and invitations.

All checks here run before any store access. Amounts arrive as decimal
numbers and are turned into integer units (cents or counts) with
``to_units``; nothing downstream does float arithmetic on a balance.
"""
from decimal import Decimal
from typing import Any, List, Union

from vouchervault.core.errors import DuplicateCode, InvalidAmount, ValidationFailed


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InvalidAmount(f"{field} must be a finite number, got {value!r}")
    # str() keeps the shortest repr, so 0.1 becomes Decimal("0.1")
    number = Decimal(str(value))
    if not number.is_finite():
        raise InvalidAmount(f"{field} must be a finite number, got {value!r}")
    return number


def validate_amount(amount: Any) -> Decimal:
    """
    Validate a redemption amount.

    Rules:
    - must be a real number (bools and strings are rejected)
    - must be finite
    - must be strictly positive
    """
    number = _to_decimal(amount, "Amount")
    if number <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    return number


def validate_balance(value: Any, field: str = "initial_amount") -> Decimal:
    """A stored balance: finite and non-negative."""
    number = _to_decimal(value, field)
    if number < 0:
        raise InvalidAmount(f"{field} cannot be negative, got {value}")
    return number


def to_units(value: Decimal, scale: int, field: str = "amount") -> int:
    """
    Convert a client amount to integer units.

    scale is 100 for VALUE vouchers (cents) and 1 for QUANTITY vouchers,
    so fractions of a cent and fractional counts are rejected.
    """
    units = value * scale
    if units != units.to_integral_value():
        if scale == 1:
            raise InvalidAmount(f"{field} must be a whole number, got {value}")
        raise InvalidAmount(f"{field} cannot have more than two decimal places, got {value}")
    return int(units)


def from_units(units: int, scale: int) -> Union[int, float]:
    """Client-facing amount for a stored integer amount."""
    if scale == 1:
        return units
    return units / scale


def check_balance_bounds(remaining: int, initial: int) -> int:
    """0 <= remaining <= initial, both in integer units."""
    if remaining < 0:
        raise InvalidAmount(f"remaining_amount cannot be negative, got {remaining}")
    if remaining > initial:
        raise InvalidAmount(
            f"Remaining amount ({remaining}) cannot exceed the initial amount ({initial})"
        )
    return remaining


def normalize_codes(codes: List[str]) -> List[str]:
    """
    Trim a code pool and check it.

    Rules:
    - at least one code
    - no blank codes
    - no duplicates (compared after trimming)
    """
    cleaned = [code.strip() for code in codes]
    if not cleaned:
        raise ValidationFailed("A code pool needs at least one code")
    if any(not code for code in cleaned):
        raise ValidationFailed("Codes cannot be blank")

    seen = set()
    duplicates = []
    for code in cleaned:
        if code in seen and code not in duplicates:
            duplicates.append(code)
        seen.add(code)
    if duplicates:
        raise DuplicateCode(
            f"Duplicate codes in pool: {', '.join(duplicates)}",
            duplicates=duplicates
        )
    return cleaned


def normalize_email(email: Any) -> str:
    """Lower-case, trimmed email; emails are compared case-insensitively."""
    if not isinstance(email, str):
        raise ValidationFailed("Email is required")
    email = email.strip().lower()
    local, _, domain = email.partition("@")
    if not local or not domain:
        raise ValidationFailed(f"Invalid email address: {email!r}")
    return email


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(f"{field} is required")
    return value.strip()
