#!/usr/bin/env python3
"""
Tests for engine setup, transactions and the SQLite connection hooks.
"""

import pytest

from gallery.database.core import SyncDatabase, sql
from gallery.database.exceptions import DatabaseConnectionError


@pytest.mark.database
class TestSyncDatabase:
    def test_pool_stats_before_and_after_initialize(self, database_url):
        database = SyncDatabase(database_url)
        assert database.get_pool_stats() == {"pool_initialized": False}

        database.initialize()
        stats = database.get_pool_stats()
        assert stats["pool_initialized"] is True
        assert stats["dialect"] == "sqlite"
        assert stats["initialized_at"] is not None
        database.close()

    def test_check_health(self, db):
        assert db.check_health() is True

    def test_sqlite_has_no_row_locks(self, db):
        assert db.supports_row_locks is False

    def test_transaction_rolls_back_on_error(self, db, make_place):
        place = make_place()

        with pytest.raises(RuntimeError):
            with db.get_connection() as conn:
                conn.execute(
                    sql("UPDATE places SET name = 'Changed' WHERE id = :id"),
                    {"id": place.id},
                )
                raise RuntimeError("abort")

        with db.get_connection() as conn:
            name = conn.execute(
                sql("SELECT name FROM places WHERE id = :id"), {"id": place.id}
            ).scalar()
        assert name == place.name

    def test_lock_place_reports_existence(self, db, make_place):
        place = make_place()
        with db.get_connection() as conn:
            assert db.lock_place(conn, place.id) is True
            assert db.lock_place(conn, place.id + 1000) is False

    def test_close_is_idempotent(self, database_url):
        database = SyncDatabase(database_url)
        database.initialize()
        database.close()
        database.close()
        assert database.get_pool_stats() == {"pool_initialized": False}

    @pytest.mark.parametrize("url", ["not-a-url", "nosuchdialect://host/db"])
    def test_bad_url_raises_connection_error(self, url):
        database = SyncDatabase(url)

        with pytest.raises(DatabaseConnectionError) as exc_info:
            database.engine
        assert str(exc_info.value).startswith("initialize:")
        assert database.get_pool_stats() == {"pool_initialized": False}
