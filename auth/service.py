"""
auth/service.py -- Register / login orchestration.

IdentityService composes the validator, the credential codec, the user store
and the token issuer. It is built once at startup (see api/main.py lifespan)
with everything it needs passed in, and holds no mutable state afterwards.

Security invariants:
  [S1] Login never reveals whether an email is registered. Unknown email,
       wrong password and a corrupt stored hash all raise the same
       InvalidCredentials.
  [S2] Timing equalization. An unknown email is verified against a dummy hash
       so it costs the same bcrypt work as a wrong password.
  [S3] Plaintext never reaches storage. Credentials are sealed (hashed, then
       plaintext dropped) before insert and before update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from auth.errors import EncodingError, InvalidCredentials, NotFound
from auth.models import Credential, User
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from auth.store import UserStore
from auth.tokens import DEFAULT_ISSUER, DEFAULT_TTL, issue_token
from auth.validation import Validator, validate_email, validate_user

logger = logging.getLogger("gymops.auth")


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in: int


class IdentityService:
    def __init__(
        self,
        store: UserStore,
        signing_key: bytes,
        *,
        issuer: str = DEFAULT_ISSUER,
        token_ttl: timedelta = DEFAULT_TTL,
        password_rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self.store = store
        self._signing_key = signing_key
        self.issuer = issuer
        self.token_ttl = token_ttl
        self.password_rounds = password_rounds
        # [S2] computed once so the first unknown-email login is not faster
        self._dummy_hash = hash_password("gymops_timing_dummy", rounds=password_rounds)

    # ------------------------------------------------------------------
    # Use cases
    # ------------------------------------------------------------------

    def register(self, fullname: str, email: str, password: str) -> User:
        """Create a user and return it with id and timestamps assigned.

        Raises ValidationError, DuplicateEmail or StorageError. Uniqueness is
        left to the insert-time constraint, which also settles concurrent
        registrations of the same email.
        """
        draft = User(fullname=fullname, email=email, password=Credential.from_plaintext(password))
        v = Validator()
        validate_user(v, draft)
        v.raise_if_invalid()

        user = self.store.insert(draft.with_password(draft.password.sealed(self.password_rounds)))
        logger.info("Registered user %d", user.id)
        return user

    def login(self, email: str, password: str) -> IssuedToken:
        """Authenticate by email + password and issue a bearer token.

        Raises ValidationError for a malformed email or empty password, and
        InvalidCredentials for every authentication failure [S1].
        """
        v = Validator()
        validate_email(v, email)
        v.check(password != "", "password", "password is required")
        v.raise_if_invalid()

        try:
            user = self.store.find_by_email(email)
        except NotFound:
            self._equalize_timing(password)
            raise InvalidCredentials() from None

        try:
            matched = user.password.matches(password)
        except EncodingError:
            logger.exception("Stored password hash for user %d is corrupt", user.id)
            raise InvalidCredentials() from None
        if not matched:
            raise InvalidCredentials()

        token = issue_token(self._signing_key, user.id, issuer=self.issuer, ttl=self.token_ttl)
        logger.info("Issued token for user %d", user.id)
        return IssuedToken(token=token, expires_in=int(self.token_ttl.total_seconds()))

    def update_user(
        self,
        user_id: int,
        *,
        fullname: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> User:
        """Change any of fullname, email or password for an existing user.

        A new password is validated, then hashed before it reaches storage
        [S3]. Raises NotFound, ValidationError, DuplicateEmail or StorageError.
        """
        current = self.store.find_by_id(user_id)
        draft = User(
            id=current.id,
            fullname=current.fullname if fullname is None else fullname,
            email=current.email if email is None else email,
            password=current.password if password is None else Credential.from_plaintext(password),
        )
        v = Validator()
        validate_user(v, draft)
        v.raise_if_invalid()

        updated = self.store.update(user_id, draft.with_password(draft.password.sealed(self.password_rounds)))
        logger.info("Updated user %d", user_id)
        return updated

    def delete_user(self, user_id: int) -> None:
        """Remove a user. Raises NotFound if the id does not exist."""
        self.store.delete(user_id)
        logger.info("Deleted user %d", user_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _equalize_timing(self, password: str) -> None:
        # [S2] do NOT return early before running bcrypt
        verify_password(self._dummy_hash, password)
