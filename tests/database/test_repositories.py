"""Tests for the periodic configuration repository and store."""

from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from harvest_scheduler.config import HarvestSchedulerConfig
from harvest_scheduler.database import (
    PeriodicConfigRecord,
    PeriodicConfigRepository,
    SqlPeriodicConfigStore,
    create_tables,
    get_db_session,
    get_session_maker,
    init_engine,
)
from harvest_scheduler.database.connection import get_db_path
from harvest_scheduler.scheduler.models import PeriodicConfig, PeriodicInterval
from harvest_scheduler.scheduler.trigger_compiler import compile_trigger


@pytest.fixture
def session_maker(tmp_path: Path):
    """Create a session maker on a fresh SQLite database."""
    config = HarvestSchedulerConfig(data_dir=tmp_path, database_url=f"sqlite:///{tmp_path}/db/test.db")
    engine = init_engine(config)
    create_tables(engine)
    yield get_session_maker(engine)
    engine.dispose()


def sample_config() -> PeriodicConfig:
    return PeriodicConfig(
        start_at=datetime(2024, 1, 31, 10, 0, tzinfo=timezone.utc),
        periodic_interval=PeriodicInterval.MONTHLY,
    )


class TestConnection:
    """Tests for connection helpers."""

    def test_db_path(self, tmp_path: Path) -> None:
        """Test the SQLite file path is derived from the URL."""
        config = HarvestSchedulerConfig(database_url=f"sqlite:///{tmp_path}/test.db")

        assert get_db_path(config) == tmp_path / "test.db"

    def test_db_path_other_databases(self) -> None:
        """Test non-file databases have no path."""
        assert get_db_path(HarvestSchedulerConfig(database_url="sqlite:///:memory:")) is None
        assert get_db_path(HarvestSchedulerConfig(database_url="postgresql://db/harvest")) is None

    def test_init_engine_creates_directory(self, tmp_path: Path) -> None:
        """Test the database directory is created."""
        config = HarvestSchedulerConfig(database_url=f"sqlite:///{tmp_path}/nested/dir/test.db")

        engine = init_engine(config)
        engine.dispose()

        assert (tmp_path / "nested" / "dir").is_dir()

    def test_session_rolls_back_on_error(self, session_maker) -> None:
        """Test failed sessions leave no changes behind."""
        with pytest.raises(RuntimeError):
            with get_db_session(session_maker) as session:
                PeriodicConfigRepository(session).upsert("diku", sample_config())
                raise RuntimeError("abort")

        with get_db_session(session_maker) as session:
            assert PeriodicConfigRepository(session).get("diku") is None


class TestPeriodicConfigRepository:
    """Tests for PeriodicConfigRepository."""

    def test_upsert_and_get(self, session_maker) -> None:
        """Test storing and reading a configuration."""
        with get_db_session(session_maker) as session:
            PeriodicConfigRepository(session).upsert("diku", sample_config())

        with get_db_session(session_maker) as session:
            config = PeriodicConfigRepository(session).get("diku")

        assert config == sample_config()
        assert config.start_at.tzinfo == timezone.utc

    def test_get_missing(self, session_maker) -> None:
        """Test reading an unknown tenant."""
        with get_db_session(session_maker) as session:
            assert PeriodicConfigRepository(session).get("unknown") is None

    def test_times_kept_as_instants(self, session_maker) -> None:
        """Test times in other zones come back as the same instant in UTC."""
        berlin = datetime(2024, 7, 1, 10, 30, tzinfo=ZoneInfo("Europe/Berlin"))
        config = PeriodicConfig(start_at=berlin, periodic_interval=PeriodicInterval.DAILY, last_triggered_at=berlin)

        with get_db_session(session_maker) as session:
            PeriodicConfigRepository(session).upsert("diku", config)
        with get_db_session(session_maker) as session:
            stored = PeriodicConfigRepository(session).get("diku")

        assert stored.start_at == berlin
        assert stored.start_at.hour == 8
        assert stored.last_triggered_at == berlin

    def test_naive_times_local_to_zone(self, session_maker) -> None:
        """Test naive times are stored as wall-clock time in the repository's zone."""
        config = PeriodicConfig(
            start_at=datetime(2024, 7, 1, 10, 30),
            periodic_interval=PeriodicInterval.DAILY,
            last_triggered_at=datetime(2024, 7, 2, 10, 30),
        )

        with get_db_session(session_maker) as session:
            record = PeriodicConfigRepository(session, "Europe/Berlin").upsert("diku", config)
            assert record.start_at == datetime(2024, 7, 1, 8, 30)
        with get_db_session(session_maker) as session:
            stored = PeriodicConfigRepository(session, "Europe/Berlin").get("diku")

        berlin = ZoneInfo("Europe/Berlin")
        assert stored.start_at == datetime(2024, 7, 1, 10, 30, tzinfo=berlin)
        assert stored.last_triggered_at == datetime(2024, 7, 2, 10, 30, tzinfo=berlin)

    def test_upsert_replaces(self, session_maker) -> None:
        """Test a second upsert replaces the configuration."""
        updated = PeriodicConfig(
            start_at=datetime(2024, 2, 1, 6, 0, tzinfo=timezone.utc),
            periodic_interval=PeriodicInterval.WEEKLY,
            last_triggered_at=datetime(2024, 2, 8, 6, 0, tzinfo=timezone.utc),
        )

        with get_db_session(session_maker) as session:
            repo = PeriodicConfigRepository(session)
            repo.upsert("diku", sample_config())
            repo.upsert("diku", updated)

        with get_db_session(session_maker) as session:
            assert PeriodicConfigRepository(session).get("diku") == updated
            assert session.query(PeriodicConfigRecord).count() == 1

    def test_unknown_interval_stored_as_unset(self, session_maker) -> None:
        """Test an unknown cadence is stored as no cadence."""
        with get_db_session(session_maker) as session:
            PeriodicConfigRepository(session).upsert(
                "diku",
                PeriodicConfig(start_at=datetime(2024, 1, 1, tzinfo=timezone.utc), periodic_interval="hourly"),
            )
        with get_db_session(session_maker) as session:
            record = PeriodicConfigRepository(session).get_record("diku")
            assert record.periodic_interval is None

    def test_get_all(self, session_maker) -> None:
        """Test listing all configurations by tenant."""
        with get_db_session(session_maker) as session:
            repo = PeriodicConfigRepository(session)
            repo.upsert("tenant-b", sample_config())
            repo.upsert("tenant-a", sample_config())

        with get_db_session(session_maker) as session:
            configs = PeriodicConfigRepository(session).get_all()

        assert list(configs) == ["tenant-a", "tenant-b"]

    def test_delete(self, session_maker) -> None:
        """Test deleting a configuration."""
        with get_db_session(session_maker) as session:
            PeriodicConfigRepository(session).upsert("diku", sample_config())

        with get_db_session(session_maker) as session:
            repo = PeriodicConfigRepository(session)
            assert repo.delete("diku") is True
            assert repo.delete("diku") is False

    def test_record_to_dict(self, session_maker) -> None:
        """Test record serialization."""
        with get_db_session(session_maker) as session:
            record = PeriodicConfigRepository(session).upsert("diku", sample_config())
            data = record.to_dict()

        assert data["tenant_id"] == "diku"
        assert data["periodic_interval"] == "monthly"


class TestSqlPeriodicConfigStore:
    """Tests for the async store wrapper."""

    @pytest.mark.asyncio
    async def test_round_trip(self, session_maker) -> None:
        """Test the store reads back what it wrote."""
        store = SqlPeriodicConfigStore(session_maker)

        await store.upsert("diku", sample_config())

        assert await store.get("diku") == sample_config()
        assert await store.list_all() == {"diku": sample_config()}
        assert await store.delete("diku") is True
        assert await store.get("diku") is None

    @pytest.mark.asyncio
    async def test_naive_anchor_compiles_to_same_hour(self, session_maker) -> None:
        """Test a stored naive anchor keeps its local time of day."""
        config = PeriodicConfig(start_at=datetime(2024, 7, 1, 10, 30), periodic_interval=PeriodicInterval.DAILY)
        store = SqlPeriodicConfigStore(session_maker, "Europe/Berlin")

        await store.upsert("diku", config)
        stored = await store.get("diku")

        before = compile_trigger("diku", config, "Europe/Berlin")
        after = compile_trigger("diku", stored, "Europe/Berlin")
        assert (after.hour, after.minute) == (before.hour, before.minute) == (10, 30)
        assert after.start_at == before.start_at
