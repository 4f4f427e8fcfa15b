"""Password policy checks."""

import re
from dataclasses import dataclass
from typing import Optional

MIN_PASSWORD_LENGTH = 6
STRONG_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class PasswordValidation:
    """Result of checking a password against the policy."""

    valid: bool
    message: Optional[str] = None
    is_strong: bool = False


def validate_password(password: str) -> PasswordValidation:
    """
    Check a password against the policy.

    Passwords shorter than 6 characters are rejected. Anything else is
    accepted; it counts as strong only with 8+ characters including upper
    and lower case letters, a digit and a symbol. Weak passwords get a
    message listing what is missing.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        return PasswordValidation(
            valid=False,
            message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    has_upper = re.search(r"[A-Z]", password) is not None
    has_lower = re.search(r"[a-z]", password) is not None
    has_number = re.search(r"[0-9]", password) is not None
    has_special = re.search(r"[^A-Za-z0-9]", password) is not None
    long_enough = len(password) >= STRONG_PASSWORD_LENGTH

    if long_enough and has_upper and has_lower and has_number and has_special:
        return PasswordValidation(valid=True, message="Strong password", is_strong=True)

    missing: list[str] = []
    if not long_enough:
        missing.append("8+ characters")
    if not has_upper:
        missing.append("uppercase letter")
    if not has_lower:
        missing.append("lowercase letter")
    if not has_number:
        missing.append("number")
    if not has_special:
        missing.append("special symbol")

    return PasswordValidation(
        valid=True,
        message=f"Weak password. For strong security, add: {', '.join(missing)}",
        is_strong=False,
    )
