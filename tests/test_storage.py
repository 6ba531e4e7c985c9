"""
Tests for storage backends and transaction support
"""

import pytest
from datetime import datetime, timezone

from lending.storage import InMemoryStorage, SQLiteStorage, create_storage


def record(record_id: str, **fields):
    data = {
        "id": record_id,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
    data.update(fields)
    return data


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Run each test against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestStorageBackends:
    """Test CRUD behaviour shared by the backends"""

    def test_save_and_load(self, storage):
        """Test basic save, load and exists"""
        storage.save("loans", "loan-1", record("loan-1", total_amount="1300.00"))

        assert storage.load("loans", "loan-1")["total_amount"] == "1300.00"
        assert storage.exists("loans", "loan-1")
        assert storage.load("loans", "missing") is None
        assert storage.count("loans") == 1

    def test_loaded_records_are_copies(self, storage):
        """Test mutating a loaded record does not change storage"""
        storage.save("loans", "loan-1", record("loan-1", status="ACTIVE"))
        loaded = storage.load("loans", "loan-1")
        loaded["status"] = "CANCELLED"

        assert storage.load("loans", "loan-1")["status"] == "ACTIVE"

    def test_find(self, storage):
        """Test filtering on record fields"""
        storage.save("installments", "i-1", record("i-1", loan_id="loan-1", status="PENDING"))
        storage.save("installments", "i-2", record("i-2", loan_id="loan-1", status="PAID"))
        storage.save("installments", "i-3", record("i-3", loan_id="loan-2", status="PENDING"))

        assert len(storage.find("installments", {"loan_id": "loan-1"})) == 2
        assert [r["id"] for r in storage.find("installments", {"loan_id": "loan-1", "status": "PAID"})] == ["i-2"]
        assert storage.find("installments", {"loan_id": "loan-9"}) == []

    def test_delete_and_delete_where(self, storage):
        """Test single and filtered deletes"""
        for n in range(3):
            storage.save("cash_flow", f"e-{n}", record(f"e-{n}", installment_id="i-1" if n else "i-2"))

        assert storage.delete_where("cash_flow", {"installment_id": "i-1"}) == 2
        assert storage.delete("cash_flow", "e-0")
        assert not storage.delete("cash_flow", "e-0")
        assert storage.count("cash_flow") == 0

    def test_save_many(self, storage):
        """Test batch saves"""
        saved = storage.save_many("installments", [(f"i-{n}", record(f"i-{n}")) for n in range(5)])
        assert saved == 5
        assert len(storage.load_all("installments")) == 5


class TestTransactions:
    """Test atomic blocks"""

    def test_rollback_on_error(self, storage):
        """Test a failed block leaves no partial rows"""
        storage.save("loans", "loan-1", record("loan-1", status="ACTIVE"))

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "loan-1", record("loan-1", status="COMPLETED"))
                storage.save("loans", "loan-2", record("loan-2"))
                raise RuntimeError("boom")

        assert storage.load("loans", "loan-1")["status"] == "ACTIVE"
        assert not storage.exists("loans", "loan-2")

    def test_outer_failure_undoes_inner_batch(self, storage):
        """Test an outer failure also undoes a finished inner batch"""
        with pytest.raises(ValueError):
            with storage.atomic():
                storage.save("loans", "loan-1", record("loan-1"))
                storage.save_many("installments", [("i-1", record("i-1"))])
                raise ValueError("invalid")

        assert not storage.exists("loans", "loan-1")
        assert not storage.exists("installments", "i-1")

    def test_inner_failure_keeps_outer_writes(self, storage):
        """Test a failed inner block only undoes its own writes"""
        with storage.atomic():
            storage.save("loans", "a", record("a"))
            try:
                with storage.atomic():
                    storage.save("loans", "b", record("b"))
                    raise RuntimeError("inner")
            except RuntimeError:
                pass
            storage.save("loans", "c", record("c"))

        assert sorted(r["id"] for r in storage.load_all("loans")) == ["a", "c"]

    def test_commit(self, storage):
        """Test a successful block persists"""
        with storage.atomic():
            storage.save("loans", "loan-1", record("loan-1"))
        assert storage.exists("loans", "loan-1")


class TestCreateStorage:
    """Test building a backend from a database URL"""

    def test_memory(self):
        """Test the in-memory URL"""
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite(self, tmp_path):
        """Test a sqlite URL opens the file"""
        storage = create_storage(f"sqlite:///{tmp_path / 'lending.db'}")
        assert isinstance(storage, SQLiteStorage)
        storage.close()

    def test_unsupported(self):
        """Test other schemes are rejected"""
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/lending")
