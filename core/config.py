"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for gymops happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead, or
receive the values as constructor arguments.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var
      names (e.g. auth_token_key -> AUTH_TOKEN_KEY).

  @model_validator(mode="after"): Implements the environment-conditional
      signing key policy: development generates a key with a warning,
      production refuses to start without one.

The signing key is kept in its base64 at-rest form here. It is decoded and
its length checked by auth.tokens.decode_signing_key() during startup, before
the first token is issued.

Layer rule: core/ is the kernel. This module may not import from api/ or
auth/.
"""

import base64
import logging
import secrets
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gymops.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in development
    and test environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    environment: Literal["development", "production"] = "production"
    host: str = "127.0.0.1"
    port: int = 4000

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    # GOOSE_DBSTRING is accepted so the migration tool and the server can
    # share one variable.
    database_url: str = Field(
        default="sqlite:///gymops.db",
        validation_alias=AliasChoices("DATABASE_URL", "GOOSE_DBSTRING"),
    )
    db_timeout_seconds: float = 5.0
    db_pool_size: int = 10

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Base64-encoded HS256 key. Empty string is the sentinel for "not
    # configured"; the validator below either generates one or raises.
    auth_token_key: str = ""
    token_issuer: str = "gym-ops"
    token_expire_seconds: int = 24 * 60 * 60
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    @property
    def debug(self) -> bool:
        return self.environment == "development"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, value: str) -> str:
        """Route bare PostgreSQL URLs to the psycopg 3 driver.

        Migration tools write postgres:// DSNs, which SQLAlchemy does not
        recognise, and a plain postgresql:// selects psycopg2.
        """
        for scheme in ("postgres://", "postgresql://"):
            if value.startswith(scheme):
                return "postgresql+psycopg://" + value[len(scheme):]
        return value

    @model_validator(mode="after")
    def validate_auth_token_key(self) -> "Settings":
        """Enforce the AUTH_TOKEN_KEY policy.

        Development: auto-generate a random 32-byte key with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production: refuse to start if AUTH_TOKEN_KEY is missing. A random
            key per process would silently invalidate every issued token on
            restart and differ between replicas.
        """
        if not self.auth_token_key:
            if self.debug:
                self.auth_token_key = base64.b64encode(secrets.token_bytes(32)).decode("ascii")
                logger.warning("WARNING: Using auto-generated AUTH_TOKEN_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "AUTH_TOKEN_KEY is required in production. "
                    "Set AUTH_TOKEN_KEY in your environment or .env file. "
                    "To run in development mode, set ENVIRONMENT=development."
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
