"""
auth/passwords.py -- Password hashing and verification (bcrypt).

Security design decisions:
  bcrypt is used directly (no passlib wrapper). Its cost factor makes
  brute-force expensive and every hash carries its own random salt, so the
  same plaintext never hashes to the same value twice.

  Cost factor: 12 rounds by default. Tests may pass a lower value through the
  rounds argument; production code reads it from Settings.bcrypt_rounds.

  72-byte limit: bcrypt only looks at the first 72 bytes of input, and recent
  bcrypt releases raise ValueError on longer input. We truncate explicitly
  on both the hash and the verify path so any valid string hashes, and the
  two paths always agree on what was hashed.

  Errors: a wrong password is an ordinary False. A corrupt stored hash is an
  EncodingError -- callers decide how to present it (login folds it into
  InvalidCredentials so the end user cannot tell the cases apart).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

from auth.errors import EncodingError

DEFAULT_ROUNDS = 12

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> bytes:
    """Return a salted bcrypt hash of plain.

    Raises EncodingError only when bcrypt itself fails (e.g. an invalid cost
    factor or resource exhaustion), never because of the password content.
    """
    try:
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=rounds))
    except (ValueError, TypeError, MemoryError) as exc:
        raise EncodingError(f"bcrypt hashing failed: {exc}") from exc


def verify_password(hashed: bytes, plain: str) -> bool:
    """Constant-time check of plain against a stored bcrypt hash.

    Returns False on mismatch. Raises EncodingError if hashed is not a
    well-formed bcrypt hash.
    """
    try:
        return bcrypt.checkpw(_encode(plain), bytes(hashed))
    except (ValueError, TypeError) as exc:
        raise EncodingError(f"malformed password hash: {exc}") from exc
