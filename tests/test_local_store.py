"""Tests for okanassist.data.local_store — LocalStore (SQLite key-value)."""

import sqlite3

from okanassist.data.local_store import SESSION_KEY, USER_DATA_KEY, LocalStore


class TestLocalStore:
    def test_missing_key_is_none(self, local_store):
        assert local_store.get_json(SESSION_KEY) is None
        assert not local_store.has(SESSION_KEY)

    def test_set_and_get(self, local_store):
        local_store.set_json(USER_DATA_KEY, {"user_id": "u1", "currency": "USD"})
        assert local_store.get_json(USER_DATA_KEY) == {"user_id": "u1", "currency": "USD"}

    def test_set_overwrites(self, local_store):
        local_store.set_json(SESSION_KEY, {"v": 1})
        local_store.set_json(SESSION_KEY, {"v": 2})
        assert local_store.get_json(SESSION_KEY) == {"v": 2}

    def test_set_many_and_remove(self, local_store):
        local_store.set_many({USER_DATA_KEY: {"a": 1}, SESSION_KEY: {"b": 2}})
        local_store.remove(USER_DATA_KEY, SESSION_KEY)
        assert not local_store.has(USER_DATA_KEY)
        assert not local_store.has(SESSION_KEY)

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "store.db")
        LocalStore(db_path=path).set_json(SESSION_KEY, {"token": "t"})
        assert LocalStore(db_path=path).get_json(SESSION_KEY) == {"token": "t"}

    def test_corrupt_value_discarded(self, tmp_path):
        path = str(tmp_path / "store.db")
        store = LocalStore(db_path=path)
        with sqlite3.connect(path) as conn:
            conn.execute(
                "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                (SESSION_KEY, "{not json", "2025-01-01"),
            )
        assert store.get_json(SESSION_KEY) is None
        assert not store.has(SESSION_KEY)
