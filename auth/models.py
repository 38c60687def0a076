"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, near-zero logic). The store and the
service do the work; these types only own domain shape.

Credential lifecycle:
  input phase   Credential.from_plaintext(p)  -> plaintext set, hash None
  sealed phase  credential.sealed()           -> hash set, plaintext None
  from storage  Credential.from_hash(h)       -> hash set, plaintext None

Both fields are excluded from repr, and User.public_fields() is the only
outward view of a user. It never includes the credential.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from auth.errors import EncodingError
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password


@dataclass(frozen=True)
class Credential:
    """Password material for one user: transient plaintext or persisted hash."""

    plaintext: str | None = field(default=None, repr=False, compare=False)
    hash: bytes | None = field(default=None, repr=False)

    @classmethod
    def from_plaintext(cls, plaintext: str) -> Credential:
        return cls(plaintext=plaintext)

    @classmethod
    def from_hash(cls, hashed: bytes) -> Credential:
        return cls(hash=bytes(hashed))

    @property
    def is_sealed(self) -> bool:
        return self.hash is not None and self.plaintext is None

    def sealed(self, rounds: int = DEFAULT_ROUNDS) -> Credential:
        """Hash the plaintext and return a credential holding only the hash.

        Raises EncodingError if hashing fails. Calling this on an already
        sealed credential returns it unchanged.
        """
        if self.plaintext is None:
            return self
        return Credential(hash=hash_password(self.plaintext, rounds=rounds))

    def matches(self, candidate: str) -> bool:
        """Return True if candidate matches the stored hash.

        A wrong password is False, not an error. A missing or malformed hash
        raises EncodingError.
        """
        if self.hash is None:
            raise EncodingError("credential has no stored hash")
        return verify_password(self.hash, candidate)


@dataclass
class User:
    """A registered identity.

    id, created_at and updated_at are None until the store assigns them at
    insert time.
    """

    fullname: str
    email: str
    password: Credential = field(default_factory=Credential, repr=False)
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def with_password(self, password: Credential) -> User:
        return replace(self, password=password)

    def public_fields(self) -> dict:
        return {
            "id": self.id,
            "fullname": self.fullname,
            "email": self.email,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
