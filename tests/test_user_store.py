"""Unit tests for auth/store.py -- UserStore persistence and error mapping.

Covers:
- insert assigns id and timestamps; only the hash is stored
- duplicate email -> DuplicateEmail, no partial record
- find_by_email / find_by_username / find_by_id -> NotFound when absent
- update stores the hash, bumps updated_at, maps NotFound / DuplicateEmail
- delete -> NotFound for unknown ids, and the record is gone afterwards
- a user without a hash never reaches storage
- driver failures and unusable URLs surface as StorageError
- pool checkout is bounded by the store timeout on every SQLite URL
"""

from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.pool import QueuePool

from auth.errors import DuplicateEmail, NotFound, StorageError, UnhashedCredentialError
from auth.models import Credential, User
from auth.passwords import hash_password
from auth.store import UserStore

ROUNDS = 4


def _new_user(email: str = "jane@example.com", fullname: str = "Jane Doe Smith", password: str = "longpassword1") -> User:
    return User(fullname=fullname, email=email, password=Credential(hash=hash_password(password, rounds=ROUNDS)))


def _count(store: UserStore) -> int:
    with store.engine.connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM users")).scalar()


class TestInsert:
    def test_assigns_id_and_timestamps(self, store: UserStore) -> None:
        user = store.insert(_new_user())
        assert isinstance(user.id, int)
        assert isinstance(user.created_at, datetime)
        assert user.created_at.tzinfo is not None
        assert user.updated_at == user.created_at

    def test_ids_are_distinct(self, store: UserStore) -> None:
        first = store.insert(_new_user("a@example.com"))
        second = store.insert(_new_user("b@example.com"))
        assert first.id != second.id

    def test_stores_hash_not_plaintext(self, store: UserStore) -> None:
        store.insert(_new_user())
        with store.engine.connect() as conn:
            stored = conn.execute(text("SELECT password FROM users")).scalar()
        assert b"longpassword1" not in bytes(stored)
        assert store.find_by_email("jane@example.com").password.matches("longpassword1")

    def test_duplicate_email(self, store: UserStore) -> None:
        store.insert(_new_user())
        with pytest.raises(DuplicateEmail):
            store.insert(_new_user(fullname="Someone Else Entirely"))
        assert _count(store) == 1

    def test_unhashed_credential_never_reaches_storage(self, store: UserStore) -> None:
        user = User(
            fullname="Jane Doe Smith",
            email="jane@example.com",
            password=Credential.from_plaintext("longpassword1"),
        )
        with pytest.raises(UnhashedCredentialError):
            store.insert(user)
        assert _count(store) == 0


class TestFind:
    def test_find_by_email(self, store: UserStore) -> None:
        created = store.insert(_new_user())
        found = store.find_by_email("jane@example.com")
        assert found.id == created.id
        assert found.fullname == "Jane Doe Smith"
        assert found.password.is_sealed

    def test_find_by_email_missing(self, store: UserStore) -> None:
        with pytest.raises(NotFound):
            store.find_by_email("nobody@example.com")

    def test_find_by_username(self, store: UserStore) -> None:
        created = store.insert(_new_user())
        store.insert(_new_user("twin@example.com"))
        assert store.find_by_username("Jane Doe Smith").id == created.id

    def test_find_by_username_missing(self, store: UserStore) -> None:
        with pytest.raises(NotFound):
            store.find_by_username("Nobody At All")

    def test_find_by_id(self, store: UserStore) -> None:
        created = store.insert(_new_user())
        assert store.find_by_id(created.id).email == "jane@example.com"

    def test_find_by_id_missing(self, store: UserStore) -> None:
        with pytest.raises(NotFound):
            store.find_by_id(9999)


class TestUpdate:
    def test_update_fields_and_hash(self, store: UserStore) -> None:
        created = store.insert(_new_user())
        changed = User(
            fullname="Jane Q. Doe Smith",
            email="jane.smith@example.com",
            password=Credential(hash=hash_password("newpassword9", rounds=ROUNDS)),
        )
        updated = store.update(created.id, changed)
        assert updated.id == created.id
        assert updated.fullname == "Jane Q. Doe Smith"
        assert updated.created_at == created.created_at
        assert updated.updated_at >= created.updated_at
        assert store.find_by_email("jane.smith@example.com").password.matches("newpassword9")

    def test_update_missing_user(self, store: UserStore) -> None:
        with pytest.raises(NotFound):
            store.update(9999, _new_user())

    def test_update_to_taken_email(self, store: UserStore) -> None:
        store.insert(_new_user("taken@example.com"))
        other = store.insert(_new_user("other@example.com"))
        with pytest.raises(DuplicateEmail):
            store.update(other.id, _new_user("taken@example.com"))
        assert store.find_by_id(other.id).email == "other@example.com"

    def test_update_with_plaintext_only_is_rejected(self, store: UserStore) -> None:
        created = store.insert(_new_user())
        with pytest.raises(UnhashedCredentialError):
            store.update(created.id, created.with_password(Credential.from_plaintext("newpassword9")))


class TestDelete:
    def test_delete_missing_user(self, store: UserStore) -> None:
        with pytest.raises(NotFound):
            store.delete(9999)

    def test_delete_then_find(self, store: UserStore) -> None:
        created = store.insert(_new_user())
        store.delete(created.id)
        with pytest.raises(NotFound):
            store.find_by_email("jane@example.com")

    def test_delete_twice(self, store: UserStore) -> None:
        created = store.insert(_new_user())
        store.delete(created.id)
        with pytest.raises(NotFound):
            store.delete(created.id)


class TestStorageErrors:
    def test_driver_failure_becomes_storage_error(self, store: UserStore) -> None:
        with store.engine.begin() as conn:
            conn.execute(text("DROP TABLE users"))
        with pytest.raises(StorageError):
            store.find_by_email("jane@example.com")
        with pytest.raises(StorageError):
            store.insert(_new_user())

    def test_ping(self, store: UserStore) -> None:
        store.ping()

    def test_pool_checkout_is_bounded_by_timeout(self, store: UserStore) -> None:
        assert isinstance(store.engine.pool, QueuePool)
        assert store.engine.pool.timeout() == 5.0
        assert store.engine.pool.size() == 10

    def test_file_database_honours_pool_options(self, tmp_path) -> None:
        file_store = UserStore(f"sqlite:///{tmp_path / 'users.db'}", timeout=2.0, pool_size=3)
        try:
            assert file_store.engine.pool.timeout() == 2.0
            assert file_store.engine.pool.size() == 3
            file_store.ping()
        finally:
            file_store.close()

    def test_private_memory_database_keeps_one_connection(self) -> None:
        memory_store = UserStore("sqlite://")
        try:
            memory_store.insert(_new_user())
            assert memory_store.find_by_email("jane@example.com").fullname == "Jane Doe Smith"
        finally:
            memory_store.close()

    def test_unknown_backend_is_storage_error(self) -> None:
        with pytest.raises(StorageError):
            UserStore("postgres://gym:pw@localhost:5432/gym")
