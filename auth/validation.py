"""
auth/validation.py -- Structural input checks, independent of storage.

Validator accumulates every violation keyed by field name instead of failing
on the first one. Only the first message recorded for a field is kept, so the
"required" message wins over a length message for an empty value.

Rules:
  fullname  required, at least 10 characters
  email     required, standard email shape
  password  required, at least 8 characters -- only checked when the user's
            credential carries plaintext (registration / password change)
"""

from __future__ import annotations

import re

from auth.errors import ValidationError
from auth.models import User

EMAIL_RX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

FULLNAME_MIN_LENGTH = 10
PASSWORD_MIN_LENGTH = 8


class Validator:
    def __init__(self) -> None:
        self.errors: dict[str, str] = {}

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        self.errors.setdefault(key, message)

    def check(self, ok: bool, key: str, message: str) -> None:
        if not ok:
            self.add_error(key, message)

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)


def matches(value: str, rx: re.Pattern) -> bool:
    return rx.fullmatch(value) is not None


def validate_email(v: Validator, email: str) -> None:
    v.check(email != "", "email", "email is required")
    v.check(matches(email, EMAIL_RX), "email", "must be a valid email address")


def validate_password_plaintext(v: Validator, password: str) -> None:
    v.check(password != "", "password", "password is required")
    v.check(
        len(password) >= PASSWORD_MIN_LENGTH,
        "password",
        f"must be at least {PASSWORD_MIN_LENGTH} characters long",
    )


def validate_fullname(v: Validator, fullname: str) -> None:
    v.check(fullname != "", "fullname", "fullname is required")
    v.check(
        len(fullname) >= FULLNAME_MIN_LENGTH,
        "fullname",
        f"must be at least {FULLNAME_MIN_LENGTH} characters long",
    )


def validate_user(v: Validator, user: User) -> None:
    validate_fullname(v, user.fullname)
    validate_email(v, user.email)
    if user.password.plaintext is not None:
        validate_password_plaintext(v, user.password.plaintext)
