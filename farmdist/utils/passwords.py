# farmdist/utils/passwords.py
"""Credentials for accounts and couriers: scrypt hashes and the sign-up rules."""

from __future__ import annotations

import re

from werkzeug.security import check_password_hash, generate_password_hash

from farmdist.errors import InvalidArgument

MIN_PASSWORD_LENGTH = 8

_RULES = (
    (lambda pw: len(pw) >= MIN_PASSWORD_LENGTH, f"Password must be at least {MIN_PASSWORD_LENGTH} characters."),
    (re.compile(r"[A-Za-z]").search, "Include at least one letter."),
    (re.compile(r"\d").search, "Include at least one number."),
)


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or not plain_password.strip():
        raise ValueError("Password must be a non-empty string.")
    return generate_password_hash(plain_password, method="scrypt")


def verify_password(password_hash: str | None, plain_password: str | None) -> bool:
    if not password_hash or not plain_password:
        return False
    return check_password_hash(password_hash, plain_password)


def password_problem(plain_password) -> str | None:
    """The first rule a new password breaks, or None when it is acceptable."""
    if not isinstance(plain_password, str) or not plain_password.strip():
        return "Password cannot be empty."
    pw = plain_password.strip()
    for check, message in _RULES:
        if not check(pw):
            return message
    return None


def require_strong_password(plain_password) -> str:
    problem = password_problem(plain_password)
    if problem:
        raise InvalidArgument(problem, error="Weak password")
    return plain_password
