"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Service and route code never touches SQL directly.

Error contract:
  find_by_*  -> NotFound when no row matches
  insert     -> DuplicateEmail on the users_email_key unique constraint
  update     -> NotFound / DuplicateEmail
  delete     -> NotFound when zero rows are affected
  anything else the driver raises (timeouts, lost connections, schema
  problems) -> StorageError, logged here with full detail.

Constraint classification uses structured driver data, never message text:
  PostgreSQL  SQLSTATE 23505 + diag.constraint_name
  SQLite      sqlite_errorname == SQLITE_CONSTRAINT_UNIQUE (SQLite does not
              report constraint names; users_email_key is the only UNIQUE
              constraint on the table)

Timeouts: every operation is bounded by `timeout` seconds (default 5). Pool
checkout uses pool_timeout on every backend; PostgreSQL sessions also get
statement_timeout and connect_timeout, SQLite connections its busy timeout.
File and named shared-memory SQLite URLs use an explicit QueuePool.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool

from auth.errors import DuplicateEmail, NotFound, StorageError, UnhashedCredentialError
from auth.models import Credential, User

logger = logging.getLogger("gymops.store")

DEFAULT_TIMEOUT = 5.0
EMAIL_CONSTRAINT = "users_email_key"

_PG_UNIQUE_VIOLATION = "23505"
_SQLITE_UNIQUE_VIOLATION = "SQLITE_CONSTRAINT_UNIQUE"
_PRIVATE_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("fullname", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("password", LargeBinary, nullable=False),  # bcrypt hash, never plaintext
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("email", name=EMAIL_CONSTRAINT),
)

# Full projection -- every read returns the same columns in the same order.
_USER_COLUMNS = (
    _users.c.id,
    _users.c.fullname,
    _users.c.email,
    _users.c.password,
    _users.c.created_at,
    _users.c.updated_at,
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _engine_options(db_url: str, timeout: float, pool_size: int) -> dict:
    if db_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False, "timeout": timeout}}
        if db_url in _PRIVATE_MEMORY_URLS:
            # A private :memory: database lives and dies with one connection.
            options["poolclass"] = StaticPool
        else:
            options.update(poolclass=QueuePool, pool_size=pool_size, pool_timeout=timeout)
        return options
    return {
        "pool_size": pool_size,
        "pool_timeout": timeout,
        "pool_pre_ping": True,
        "connect_args": {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        },
    }


def _violated_constraint(exc: IntegrityError) -> str | None:
    """Return the name of the unique constraint behind exc, if any."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == _PG_UNIQUE_VIOLATION:
        diag = getattr(orig, "diag", None)
        return getattr(diag, "constraint_name", None)
    if getattr(orig, "sqlite_errorname", None) == _SQLITE_UNIQUE_VIOLATION:
        return EMAIL_CONSTRAINT
    return None


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver exceptions raised inside the block into domain errors.

    Domain errors raised inside the block (NotFound) pass through untouched.
    """
    try:
        yield
    except IntegrityError as exc:
        if _violated_constraint(exc) == EMAIL_CONSTRAINT:
            raise DuplicateEmail() from exc
        logger.error("%s failed with integrity error: %s", operation, exc)
        raise StorageError(f"{operation} failed") from exc
    except SQLAlchemyError as exc:
        logger.error("%s failed: %s", operation, exc)
        raise StorageError(f"{operation} failed") from exc


def _require_hash(user: User) -> bytes:
    if user.password.hash is None:
        raise UnhashedCredentialError("missing password hash for user")
    return user.password.hash


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("postgresql+psycopg://app@localhost/gymops")
        user = store.insert(User(fullname="Jane Doe Smith", email="jane@example.com",
                                 password=Credential.from_plaintext("secret-pw").sealed()))
        store.find_by_email("jane@example.com")
        store.close()
    """

    def __init__(self, db_url: str, *, timeout: float = DEFAULT_TIMEOUT, pool_size: int = 10) -> None:
        self.timeout = timeout
        with _storage_errors("create engine"):
            self.engine: Engine = create_engine(db_url, **_engine_options(db_url, timeout, pool_size))
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        with _storage_errors("create schema"):
            _metadata.create_all(self.engine)

    def ping(self) -> None:
        """Round-trip a trivial query. Raises StorageError if unreachable."""
        with _storage_errors("ping"), self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _find_one(self, operation: str, condition) -> User:
        with _storage_errors(operation), self.engine.connect() as conn:
            row = conn.execute(select(*_USER_COLUMNS).where(condition)).fetchone()
        if row is None:
            raise NotFound()
        return _row_to_user(row)

    def find_by_email(self, email: str) -> User:
        """Look up a user by exact email. Raises NotFound if absent."""
        return self._find_one("find_by_email", _users.c.email == email)

    def find_by_username(self, username: str) -> User:
        """Look up a user by display name (the fullname column).

        Names are not unique; the earliest registered match is returned.
        Raises NotFound if absent.
        """
        with _storage_errors("find_by_username"), self.engine.connect() as conn:
            row = conn.execute(
                select(*_USER_COLUMNS)
                .where(_users.c.fullname == username)
                .order_by(_users.c.id)
                .limit(1)
            ).fetchone()
        if row is None:
            raise NotFound()
        return _row_to_user(row)

    def find_by_id(self, user_id: int) -> User:
        """Look up a user by primary key. Raises NotFound if absent."""
        return self._find_one("find_by_id", _users.c.id == user_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps assigned.

        Raises DuplicateEmail if the email is already registered. The
        transaction is rolled back on any failure, so no partial record is
        left behind. Raises UnhashedCredentialError if the credential was
        never sealed.
        """
        password_hash = _require_hash(user)
        now = _now()
        with _storage_errors("insert"), self.engine.begin() as conn:
            row = conn.execute(
                _users.insert()
                .values(
                    fullname=user.fullname,
                    email=user.email,
                    password=password_hash,
                    created_at=now,
                    updated_at=now,
                )
                .returning(*_USER_COLUMNS)
            ).fetchone()
        return _row_to_user(row)

    def update(self, user_id: int, user: User) -> User:
        """Overwrite fullname, email and password hash; bump updated_at.

        The credential must already be sealed -- the hash, never plaintext,
        is what reaches storage. Raises NotFound for an unknown id and
        DuplicateEmail if the new email belongs to another user.
        """
        password_hash = _require_hash(user)
        with _storage_errors("update"), self.engine.begin() as conn:
            row = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    fullname=user.fullname,
                    email=user.email,
                    password=password_hash,
                    updated_at=_now(),
                )
                .returning(*_USER_COLUMNS)
            ).fetchone()
            if row is None:
                raise NotFound()
        return _row_to_user(row)

    def delete(self, user_id: int) -> None:
        """Permanently delete a user. Raises NotFound if no row was removed."""
        with _storage_errors("delete"), self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            if result.rowcount == 0:
                raise NotFound()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; everything stored here is UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        fullname=row.fullname,
        email=row.email,
        password=Credential.from_hash(row.password),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )
