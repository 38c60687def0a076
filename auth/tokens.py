"""
auth/tokens.py -- Bearer token issuance and verification (JWT, HS256).

Security design decisions:
  JWT: python-jose with HS256. Tokens carry iss, sub (the user id as a
       decimal string), iat and exp as integer epoch seconds. Lifetime is 24
       hours unless the caller passes another ttl.

  Stateless: there is no server-side session or revocation table. A token is
       valid exactly as long as its signature verifies and exp is in the
       future. decode_token() is the symmetric counterpart of issue_token().

  Signing key: configured as base64 text (AUTH_TOKEN_KEY) and decoded once at
       startup by decode_signing_key(). Keys shorter than 32 bytes are
       rejected -- HS256 relies on key entropy.

  No module-level settings: the key is passed in explicitly by whoever owns
       it (the IdentityService built in the API lifespan).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidToken, SigningError, TokenExpired

logger = logging.getLogger("gymops.auth")

ALGORITHM = "HS256"
DEFAULT_ISSUER = "gym-ops"
DEFAULT_TTL = timedelta(hours=24)
MIN_KEY_BYTES = 32


def decode_signing_key(encoded: str) -> bytes:
    """Decode the base64 signing key from configuration.

    Raises SigningError if the value is not valid base64 or decodes to fewer
    than MIN_KEY_BYTES bytes.
    """
    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise SigningError("signing key is not valid base64") from exc
    _check_key(key)
    return key


def _check_key(key: bytes) -> None:
    if not isinstance(key, bytes):
        raise SigningError("signing key must be bytes")
    if len(key) < MIN_KEY_BYTES:
        raise SigningError(f"signing key must be at least {MIN_KEY_BYTES} bytes")


def issue_token(
    secret_key: bytes,
    user_id: int,
    *,
    issuer: str = DEFAULT_ISSUER,
    ttl: timedelta = DEFAULT_TTL,
    now: datetime | None = None,
) -> str:
    """Return a signed compact JWT asserting user_id as the subject.

    Args:
        secret_key: Decoded signing key bytes (see decode_signing_key).
        user_id:    Storage-assigned user id, carried as the sub claim.
        issuer:     iss claim identifying this service.
        ttl:        Token lifetime; exp = iat + ttl.
        now:        Issue time. Defaults to the current UTC time; tests pass a
                    fixed value to produce already-expired tokens.

    Raises SigningError if the key is malformed or signing fails.
    """
    _check_key(secret_key)
    issued_at = now or datetime.now(timezone.utc)
    iat = int(issued_at.timestamp())
    claims = {
        "iss": issuer,
        "sub": str(user_id),
        "iat": iat,
        "exp": iat + int(ttl.total_seconds()),
    }
    try:
        return jwt.encode(claims, secret_key, algorithm=ALGORITHM)
    except JWTError as exc:
        raise SigningError(f"token signing failed: {exc}") from exc


def decode_token(secret_key: bytes, token: str, *, issuer: str = DEFAULT_ISSUER) -> dict:
    """Verify a token issued by issue_token() and return its claims.

    Raises TokenExpired once exp has passed, InvalidToken on any other
    failure (wrong key, tampered payload, unexpected issuer, garbage input).
    """
    try:
        return jwt.decode(token, secret_key, algorithms=[ALGORITHM], issuer=issuer)
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        logger.debug("Token rejected: %s", exc)
        raise InvalidToken() from exc
