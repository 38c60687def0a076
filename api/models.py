"""
API request and response models for gymops REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only check JSON types. Field rules (lengths, email shape) are
applied by auth.validation inside the IdentityService, so every violation is
reported together in one field-keyed response.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users/register."""

    fullname: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    email: str = ""
    password: str = ""


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Outward view of a user. There is no password field, in any form."""

    model_config = ConfigDict(frozen=True)

    id: int
    fullname: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(**user.public_fields())


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[dict[str, str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/healthcheck."""

    model_config = ConfigDict(frozen=True)

    status: str = "OK"
    environment: str
    version: str
    components: dict[str, str]
