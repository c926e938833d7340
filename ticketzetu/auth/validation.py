"""Account input rules: age gate, password strength and public username standards."""

from __future__ import annotations

import re
from datetime import date

from ticketzetu.errors import InvalidInput

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9_\-.]*[A-Za-z0-9])?$")
CONSECUTIVE_SPECIALS = re.compile(r"[_\-.]{2,}")
RESTRICTED_WORDS: tuple[str, ...] = ("admin", "root", "moderator")
RESERVED_PREFIX = "sys_"
RESERVED_SUFFIX = "_system"


def add_years(day: date, years: int) -> date:
    """Same calendar day `years` later; Feb 29 rolls to Mar 1 in common years."""
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return date(day.year + years, 3, 1)


def is_old_enough(date_of_birth: date, today: date, minimum_age: int) -> bool:
    """True once the `minimum_age`-th birthday has been reached."""
    return today >= add_years(date_of_birth, minimum_age)


def validate_username(username: str) -> None:
    """Raise InvalidInput unless `username` meets the public username rules."""
    if len(username) < USERNAME_MIN_LENGTH:
        raise InvalidInput(f"username must be at least {USERNAME_MIN_LENGTH} characters")
    if len(username) > USERNAME_MAX_LENGTH:
        raise InvalidInput(f"username cannot exceed {USERNAME_MAX_LENGTH} characters")
    if not USERNAME_PATTERN.match(username):
        raise InvalidInput("username can only contain letters, numbers, underscores, hyphens, and dots")
    if CONSECUTIVE_SPECIALS.search(username):
        raise InvalidInput("username cannot contain consecutive special characters")

    lowered = username.lower()
    if any(word in lowered for word in RESTRICTED_WORDS):
        raise InvalidInput("username contains restricted words")
    if lowered.startswith(RESERVED_PREFIX) or lowered.endswith(RESERVED_SUFFIX):
        raise InvalidInput("username uses reserved prefixes/suffixes")


def validate_password_strength(password: str) -> None:
    """Raise InvalidInput unless `password` mixes letters and digits."""
    has_letter = any(ch.isalpha() for ch in password)
    has_digit = any(ch.isdigit() for ch in password)
    if not (has_letter and has_digit):
        raise InvalidInput("password must contain at least one number and one letter")
