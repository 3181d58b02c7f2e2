"""
Tests for the sqlmodel-backed registry and result sink, and the YAML registry.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session, select

from backup_orchestrator.database import create_db_and_tables, create_db_engine
from backup_orchestrator.errors import PersistenceError, RegistryError
from backup_orchestrator.models import Backup, Database
from backup_orchestrator.registry import SQLConfigRegistry, YamlConfigRegistry
from backup_orchestrator.schemas import JobOutcome
from backup_orchestrator.sink import MemoryResultSink, SQLResultSink


@pytest.fixture
def store(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path}/state/backup.db")
    create_db_and_tables(engine)
    return engine


def _outcome(**overrides):
    now = datetime.now(timezone.utc)
    values = {
        "database_id": "db_1",
        "database_name": "orders",
        "success": True,
        "artifact_name": "orders-2026-10-19T08-30-00-000Z.dump",
        "artifact_path": "/srv/files/orders-2026-10-19T08-30-00-000Z.dump",
        "started_at": now - timedelta(seconds=3),
        "finished_at": now,
        "size_bytes": 2048,
        "checksum": "d41d8cd98f00b204e9800998ecf8427e",
    }
    values.update(overrides)
    return JobOutcome(**values)


class TestCreateDbEngine:
    def test_creates_sqlite_directory(self, tmp_path):
        create_db_engine(f"sqlite:///{tmp_path}/nested/dir/backup.db")
        assert (tmp_path / "nested" / "dir").is_dir()


class TestSQLConfigRegistry:
    """Listing registered databases."""

    def test_lists_registrations_in_creation_order(self, store):
        base = datetime(2026, 1, 1)
        with Session(store) as session:
            session.add(Database(id="db_b", name="shop", engine="mysql", host="db2", port=3306,
                                 username="u", password="p", database_name="shop",
                                 created_at=base + timedelta(minutes=1)))
            session.add(Database(id="db_a", name="orders", engine="postgresql", host="db1", port=5432,
                                 username="u", password="p", database_name="orders",
                                 created_at=base))
            session.commit()

        registry = SQLConfigRegistry(store)
        configs = registry.list()

        assert [c.id for c in configs] == ["db_a", "db_b"]
        assert configs[0].database_name == "orders"
        assert configs[1].engine == "mysql"
        assert registry.get("db_b").name == "shop"
        assert registry.get("missing") is None

    def test_invalid_row_is_skipped(self, store):
        with Session(store) as session:
            session.add(Database(id="db_bad", name="typo", engine="mysql", host="db2", port=0,
                                 username="u", password="p", database_name="shop"))
            session.add(Database(id="db_ok", name="orders", engine="postgresql", host="db1", port=5432,
                                 username="u", password="p", database_name="orders"))
            session.commit()

        assert [c.id for c in SQLConfigRegistry(store).list()] == ["db_ok"]

    def test_get_by_name(self, store):
        with Session(store) as session:
            session.add(Database(id="db_a", name="orders", engine="postgresql", host="db1", port=5432,
                                 username="u", password="p", database_name="orders"))
            session.commit()

        assert SQLConfigRegistry(store).get("orders").id == "db_a"

    def test_empty(self, store):
        assert SQLConfigRegistry(store).list() == []

    def test_unreadable_store(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path}/empty.db")
        with pytest.raises(RegistryError, match="Could not read registered databases"):
            SQLConfigRegistry(engine).list()


class TestSQLResultSink:
    """Recording outcomes as Backup rows."""

    def test_records_success(self, store):
        SQLResultSink(store).record(_outcome())

        with Session(store) as session:
            [backup] = session.exec(select(Backup)).all()
        assert backup.database_id == "db_1"
        assert backup.name == "orders-2026-10-19T08-30-00-000Z.dump"
        assert backup.storage_path.endswith(".dump")
        assert backup.error is False
        assert backup.log is None
        assert backup.size_bytes == 2048

    def test_records_failure(self, store):
        SQLResultSink(store).record(_outcome(
            success=False,
            artifact_name="",
            artifact_path="",
            error_message="pg_dump failed with exit code 1: FATAL: password authentication failed",
            error_kind="ToolInvocationFailure",
            error_summary="Authentication error: the supplied password was rejected.",
            size_bytes=None,
            checksum=None,
        ))

        with Session(store) as session:
            [backup] = session.exec(select(Backup)).all()
        assert backup.error is True
        assert backup.name == ""
        assert "password authentication failed" in backup.log
        assert backup.error_kind == "ToolInvocationFailure"

    def test_failure_raises_persistence_error(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path}/no-tables.db")
        with pytest.raises(PersistenceError):
            SQLResultSink(engine).record(_outcome())


class TestMemoryResultSink:
    def test_keeps_outcomes(self):
        sink = MemoryResultSink()
        sink.record(_outcome())
        assert len(sink.outcomes) == 1


class TestYamlConfigRegistry:
    """Registrations declared in config.yaml."""

    def test_lists_from_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "databases:\n"
            "  - id: orders\n"
            "    name: Orders\n"
            "    engine: postgresql\n"
            "    host: db1\n"
            "    port: 5432\n"
            "    username: u\n"
            "    password_var: ORDERS_PASSWORD\n"
            "    database_name: orders\n"
        )

        configs = YamlConfigRegistry(str(path), environ={"ORDERS_PASSWORD": "pw"}).list()

        assert len(configs) == 1
        assert configs[0].password == "pw"

    def test_missing_file_is_empty(self, tmp_path):
        assert YamlConfigRegistry(str(tmp_path / "config.yaml"), environ={}).list() == []

    def test_broken_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("databases: [\n")
        with pytest.raises(RegistryError):
            YamlConfigRegistry(str(path), environ={}).list()
