"""
Tests for storage backends and transaction support
"""

import pytest

from custody_ledger.storage import InMemoryStorage, SQLiteStorage, create_storage


test_data = {
    "owner": "SP1ABCDEFGH123456789",
    "balance": 2_000_000,
    "deposit_timestamp": 1000,
    "is_active": True
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Each backend exercised through the same interface"""
    backend = create_storage(request.param, ":memory:")
    yield backend
    backend.close()


class TestStorageInterface:
    """Basic CRUD behaviour shared by all backends"""

    def test_save_and_load(self, storage):
        """Test save and load"""
        storage.save("accounts", "user1", test_data)
        assert storage.load("accounts", "user1") == test_data
        assert storage.load("accounts", "missing") is None

    def test_exists_count_and_delete(self, storage):
        """Test exists, count and delete"""
        storage.save("accounts", "user1", test_data)
        storage.save("accounts", "user2", dict(test_data, owner="user2"))

        assert storage.exists("accounts", "user1")
        assert not storage.exists("accounts", "user3")
        assert storage.count("accounts") == 2

        assert storage.delete("accounts", "user1")
        assert not storage.delete("accounts", "user1")
        assert storage.count("accounts") == 1

    def test_find_by_fields(self, storage):
        """Test finding records by field values"""
        storage.save("loans", "a:1", {"owner": "a", "loan_id": 1, "is_active": True})
        storage.save("loans", "a:2", {"owner": "a", "loan_id": 2, "is_active": False})
        storage.save("loans", "b:3", {"owner": "b", "loan_id": 3, "is_active": True})

        assert len(storage.find("loans", {"owner": "a"})) == 2
        active = storage.find("loans", {"is_active": True})
        assert sorted(record["loan_id"] for record in active) == [1, 3]
        assert storage.find("loans", {"owner": "c"}) == []

    def test_load_returns_copies(self, storage):
        """Test that loaded records are copies"""
        storage.save("accounts", "user1", test_data)
        loaded = storage.load("accounts", "user1")
        loaded["balance"] = 0
        assert storage.load("accounts", "user1")["balance"] == 2_000_000

    def test_large_integers_survive(self, storage):
        """Test large integer values"""
        storage.save("ledger_state", "aggregate", {"total_deposits": 10 ** 30})
        assert storage.load("ledger_state", "aggregate")["total_deposits"] == 10 ** 30

    def test_clear_table(self, storage):
        """Test clearing a table"""
        storage.save("accounts", "user1", test_data)
        storage.clear_table("accounts")
        assert storage.count("accounts") == 0


class TestTransactions:
    """Atomic scopes must really roll back"""

    def test_atomic_commit(self, storage):
        """Test atomic commit"""
        with storage.atomic():
            storage.save("accounts", "user1", test_data)
        assert storage.exists("accounts", "user1")

    def test_atomic_rollback_discards_writes(self, storage):
        """Test atomic rollback"""
        storage.save("accounts", "user1", test_data)

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("accounts", "user1", dict(test_data, balance=1))
                storage.save("accounts", "user2", test_data)
                raise RuntimeError("boom")

        assert storage.load("accounts", "user1")["balance"] == 2_000_000
        assert not storage.exists("accounts", "user2")

    def test_nested_atomic_rolls_back_outer_on_propagation(self, storage):
        """Test nested atomic scopes"""
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("accounts", "outer", test_data)
                with storage.atomic():
                    storage.save("accounts", "inner", test_data)
                raise RuntimeError("boom")

        assert not storage.exists("accounts", "outer")
        assert not storage.exists("accounts", "inner")

    def test_in_memory_snapshots_are_released(self):
        """Test snapshot release on commit"""
        storage = InMemoryStorage()
        with storage.atomic():
            storage.save("accounts", "user1", test_data)
        assert not storage.in_transaction


class TestSQLitePersistence:
    """SQLite keeps data across connections"""

    def test_reopen_file(self, tmp_path):
        """Test reopening a SQLite file"""
        db_path = tmp_path / "ledger.db"
        storage = SQLiteStorage(db_path)
        storage.save("accounts", "user1", test_data)
        storage.close()

        reopened = SQLiteStorage(db_path)
        assert reopened.load("accounts", "user1") == test_data
        reopened.close()

    def test_unknown_backend(self):
        """Test unknown backend name"""
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage("postgres")
