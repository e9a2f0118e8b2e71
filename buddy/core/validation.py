"""
Boundary validation helpers.

Engine operations call these before touching the store so bad input is
rejected synchronously with a ValidationError.
"""

from typing import Optional

from buddy.core.errors import ValidationError

MAX_USER_ID_LENGTH = 100


def require_user_id(user_id: object) -> str:
    """Reject empty, non-string, or oversized user ids."""
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id must be a non-empty string")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise ValidationError(f"user_id must be at most {MAX_USER_ID_LENGTH} characters")
    return user_id


def require_int(value: object, name: str, *, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """Accept real integers only (bool is rejected) within optional bounds."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{name} must be <= {maximum}")
    return value


def require_challenge_id(challenge_id: object) -> str:
    if not isinstance(challenge_id, str) or not challenge_id.strip():
        raise ValidationError("challenge_id must be a non-empty string")
    if len(challenge_id) > MAX_USER_ID_LENGTH:
        raise ValidationError(f"challenge_id must be at most {MAX_USER_ID_LENGTH} characters")
    return challenge_id
