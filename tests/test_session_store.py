import os
import tempfile
import unittest

from application.auth_gateway import RequiredStep, required_step
from application.session_store import SESSION_STORAGE_KEY, SessionStore
from domain.models import SKIPPED_SETUP, Identity, PasskeyState
from fakes import InMemoryStorage
from infrastructure.db.session_storage_sqlite import SqliteKeyValueStorage


class SessionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = InMemoryStorage()
        self.store = SessionStore(self.storage, clock=lambda: "2024-01-01T00:00:00+00:00")
        self.identity = Identity(
            id=42,
            email="john@example.com",
            first_name="John",
            hashed_pin="pin_set",
            passkey_address=SKIPPED_SETUP,
        )

    def test_save_then_load_round_trips(self):
        session = self.store.save(self.identity)
        self.assertEqual(session.issued_at, "2024-01-01T00:00:00+00:00")
        self.assertEqual(self.store.load(), self.identity)
        self.assertEqual(self.store.load_session(), session)

    def test_save_overwrites_the_single_record(self):
        self.store.save(self.identity)
        other = Identity(id=7, phone="+15550000000")
        self.store.save(other)
        self.assertEqual(list(self.storage.values), [SESSION_STORAGE_KEY])
        self.assertEqual(self.store.load(), other)

    def test_load_without_session_is_absent(self):
        self.assertIsNone(self.store.load())

    def test_corrupt_content_is_absent_and_cleared(self):
        for raw in (
            "{not json",
            "[]",
            '{"identity": {"id": 1}, "issuedAt": "x"}',
            '{"identity": {"id": "1", "email": "a@b.com"}, "issuedAt": "x"}',
            '{"identity": {"id": 1, "email": 5}, "issuedAt": "x"}',
        ):
            with self.subTest(raw=raw):
                self.storage.set(SESSION_STORAGE_KEY, raw)
                self.assertIsNone(self.store.load())
                self.assertNotIn(SESSION_STORAGE_KEY, self.storage.values)

    def test_empty_credential_fields_load_as_unset(self):
        self.storage.set(
            SESSION_STORAGE_KEY,
            '{"identity": {"id": 1, "email": "a@b.com", "hashedPin": "x", "passkeyCAddress": ""},'
            ' "issuedAt": "x"}',
        )
        identity = self.store.load()
        self.assertIsNone(identity.passkey_address)
        self.assertEqual(identity.passkey_state, PasskeyState.UNSET)
        self.assertEqual(required_step(identity), RequiredStep.PASSKEY)

    def test_clear_removes_session(self):
        self.store.save(self.identity)
        self.store.clear()
        self.assertIsNone(self.store.load())


class SqliteKeyValueStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        fd, self.db_path = tempfile.mkstemp(suffix=".db")
        os.close(fd)

    def tearDown(self) -> None:
        os.remove(self.db_path)

    def test_session_round_trips_and_is_scoped_per_owner(self):
        alice = SessionStore(SqliteKeyValueStorage(self.db_path, "chat-1"))
        bob = SessionStore(SqliteKeyValueStorage(self.db_path, "chat-2"))
        identity = Identity(id=1, email="alice@example.com")

        alice.save(identity)
        self.assertEqual(alice.load(), identity)
        self.assertIsNone(bob.load())

        alice.clear()
        self.assertIsNone(alice.load())

    def test_set_replaces_existing_value(self):
        storage = SqliteKeyValueStorage(self.db_path, "chat-1")
        storage.set("k", "one")
        storage.set("k", "two")
        self.assertEqual(storage.get("k"), "two")
        storage.delete("k")
        self.assertIsNone(storage.get("k"))


if __name__ == "__main__":
    unittest.main()
