"""
Tests for storage backends and record serialization
"""

import pytest
import threading
from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from futura_homes.storage import (
    InMemoryStorage, SQLiteStorage, StorageRecord, create_storage, encode_value
)


class Color(Enum):
    RED = "red"
    BLUE = "blue"


@dataclass
class SampleRecord(StorageRecord):
    amount: Decimal
    due_date: date
    color: Color
    note: Optional[str] = None
    settled_on: Optional[date] = None


def make_record(record_id="rec-1", amount="100.50", color=Color.RED):
    now = datetime.now(timezone.utc)
    return SampleRecord(
        id=record_id,
        created_at=now,
        updated_at=now,
        amount=Decimal(amount),
        due_date=date(2024, 5, 1),
        color=color
    )


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Each storage test runs against both backends"""
    backend = InMemoryStorage() if request.param == "memory" else SQLiteStorage(":memory:")
    yield backend
    backend.close()


class TestRecordSerialization:
    """Test StorageRecord encoding"""

    def test_encode_value(self):
        assert encode_value(Decimal("1.10")) == "1.10"
        assert encode_value(date(2024, 1, 2)) == "2024-01-02"
        assert encode_value(Color.BLUE) == "blue"
        assert encode_value({"a": [Decimal("2")]}) == {"a": ["2"]}

    def test_round_trip_restores_types(self):
        record = make_record()
        data = record.to_dict()

        assert data["amount"] == "100.50"
        assert data["due_date"] == "2024-05-01"
        assert data["color"] == "red"

        restored = SampleRecord.from_dict(data)
        assert restored.amount == Decimal("100.50")
        assert restored.due_date == date(2024, 5, 1)
        assert restored.color is Color.RED
        assert restored.note is None
        assert restored.created_at == record.created_at

    def test_optional_date_restored(self):
        record = make_record()
        record.settled_on = date(2024, 6, 1)
        assert SampleRecord.from_dict(record.to_dict()).settled_on == date(2024, 6, 1)

    def test_unknown_keys_ignored(self):
        data = make_record().to_dict()
        data["legacy_column"] = "x"
        assert SampleRecord.from_dict(data).id == "rec-1"


class TestStorageBackends:
    """Test CRUD behaviour shared by every backend"""

    def test_save_and_load(self, storage):
        storage.save("samples", "rec-1", make_record().to_dict())

        loaded = storage.load("samples", "rec-1")
        assert loaded["amount"] == "100.50"
        assert storage.exists("samples", "rec-1")
        assert not storage.exists("samples", "missing")
        assert storage.load("samples", "missing") is None

    def test_loaded_records_are_copies(self, storage):
        storage.save("samples", "rec-1", make_record().to_dict())
        loaded = storage.load("samples", "rec-1")
        loaded["amount"] = "0"
        assert storage.load("samples", "rec-1")["amount"] == "100.50"

    def test_find_with_filters(self, storage):
        storage.save("samples", "rec-1", make_record("rec-1", color=Color.RED).to_dict())
        storage.save("samples", "rec-2", make_record("rec-2", color=Color.BLUE).to_dict())

        assert [r["id"] for r in storage.find("samples", {"color": Color.BLUE})] == ["rec-2"]
        assert [r["id"] for r in storage.find("samples", {"color": "red"})] == ["rec-1"]
        assert len(storage.find("samples", {})) == 2

    def test_find_by_boolean_and_none(self, storage):
        storage.save("flags", "a", {"id": "a", "is_active": True, "owner": None})
        storage.save("flags", "b", {"id": "b", "is_active": False, "owner": "x"})

        assert [r["id"] for r in storage.find("flags", {"is_active": True})] == ["a"]
        assert [r["id"] for r in storage.find("flags", {"is_active": False})] == ["b"]

    def test_save_many_and_delete_many(self, storage):
        records = {f"rec-{i}": make_record(f"rec-{i}").to_dict() for i in range(4)}
        storage.save_many("samples", records)
        assert storage.count("samples") == 4

        deleted = storage.delete_many("samples", ["rec-0", "rec-1", "missing"])
        assert deleted == 2
        assert storage.count("samples") == 2

    def test_delete_and_clear(self, storage):
        storage.save("samples", "rec-1", make_record().to_dict())
        assert storage.delete("samples", "rec-1")
        assert not storage.delete("samples", "rec-1")

        storage.save("samples", "rec-2", make_record("rec-2").to_dict())
        storage.clear_table("samples")
        assert storage.count("samples") == 0

    def test_atomic_commits(self, storage):
        with storage.atomic():
            storage.save("samples", "rec-1", make_record().to_dict())
        assert storage.exists("samples", "rec-1")


class TestSQLiteTransactions:
    """Test SQLite transaction rollback"""

    def test_atomic_rolls_back_on_error(self):
        storage = SQLiteStorage(":memory:")
        storage.save("samples", "rec-0", make_record("rec-0").to_dict())

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("samples", "rec-1", make_record("rec-1").to_dict())
                raise RuntimeError("boom")

        assert not storage.exists("samples", "rec-1")
        assert storage.exists("samples", "rec-0")
        storage.close()

    def test_rollback_keeps_other_threads_writes(self):
        storage = SQLiteStorage(":memory:")
        storage.save("samples", "rec-0", make_record("rec-0").to_dict())
        writer = threading.Thread(
            target=storage.save, args=("samples", "rec-2", make_record("rec-2").to_dict())
        )

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("samples", "rec-1", make_record("rec-1").to_dict())
                writer.start()
                writer.join(timeout=0.2)
                raise RuntimeError("boom")
        writer.join()

        assert not storage.exists("samples", "rec-1")
        assert storage.exists("samples", "rec-2")
        storage.close()

    def test_save_many_keeps_creation_time(self):
        storage = SQLiteStorage(":memory:")
        storage.save("samples", "rec-1", make_record("rec-1").to_dict())
        created_sql = "SELECT created_at FROM samples WHERE id = ?"
        created = storage._connection.execute(created_sql, ("rec-1",)).fetchone()["created_at"]

        storage.save_many("samples", {
            "rec-1": make_record("rec-1", amount="5").to_dict(),
            "rec-2": make_record("rec-2").to_dict(),
        })

        assert storage._connection.execute(created_sql, ("rec-1",)).fetchone()["created_at"] == created
        assert [r["id"] for r in storage.load_all("samples")] == ["rec-1", "rec-2"]
        storage.close()

    def test_persists_to_file(self, tmp_path):
        path = tmp_path / "futura.db"
        storage = SQLiteStorage(path)
        storage.save("samples", "rec-1", make_record().to_dict())
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("samples", "rec-1")["amount"] == "100.50"
        reopened.close()


class TestCreateStorage:
    """Test backend selection"""

    def test_known_backends(self):
        assert isinstance(create_storage("memory"), InMemoryStorage)
        sqlite = create_storage("sqlite", ":memory:")
        assert isinstance(sqlite, SQLiteStorage)
        sqlite.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_storage("postgres")
