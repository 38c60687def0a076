"""
api/routes/v1/users.py -- Registration and login REST endpoints.

Routes:
  POST /api/v1/users/register   -- create a user; 201 {"user": {...}}
  POST /api/v1/users/login      -- email + password; 200 bearer token

Both routes are public. Handlers are plain `def` so FastAPI runs them in its
worker thread pool -- bcrypt and the database driver both block.

Security:
  [S1] Unknown email and wrong password return the identical 401 body.
  Cache-Control: no-store on login responses so tokens are never cached.
  Storage and crypto failures are not caught here. They propagate to the
  generic handler in api/main.py, which logs them and returns a bare 500.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    ErrorDetail,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from auth.errors import DuplicateEmail, InvalidCredentials, ValidationError
from auth.service import IdentityService

router = APIRouter()


def _validation_failed(exc: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=ErrorDetail(
            code="validation_error",
            message="Request validation failed.",
            fields=exc.errors,
        ).model_dump(exclude_none=True),
    )


@router.post("/users/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Register a new user. The password is hashed before it is stored."""
    identity: IdentityService = request.app.state.identity
    try:
        user = identity.register(body.fullname, body.email, body.password)
    except ValidationError as exc:
        raise _validation_failed(exc) from exc
    except DuplicateEmail as exc:
        raise HTTPException(
            status_code=409,
            detail={
                "code": "duplicate_email",
                "message": "A user with this email address already exists.",
                "fields": {"email": "a user with this email address already exists"},
            },
        ) from exc
    return RegisterResponse(user=UserResponse.from_user(user))


@router.post("/users/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token."""
    identity: IdentityService = request.app.state.identity
    try:
        issued = identity.login(body.email, body.password)
    except ValidationError as exc:
        raise _validation_failed(exc) from exc
    except InvalidCredentials:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "invalid_credentials", "message": "Invalid authentication credentials."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["WWW-Authenticate"] = "Bearer"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(access_token=issued.token, expires_in=issued.expires_in).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
