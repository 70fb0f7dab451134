"""Tests for the job registry."""

import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from harvest_scheduler.config import SchedulerConfig
from harvest_scheduler.exceptions import SchedulingConflict
from harvest_scheduler.scheduler.backend import SchedulerBackend
from harvest_scheduler.scheduler.job_registry import JobRegistry
from harvest_scheduler.scheduler.models import JobKey, PeriodicConfig, PeriodicInterval

REGISTRY_LOGGER = "harvest_scheduler.scheduler.job_registry"


def future_config(day: int = 15, hour: int = 8, minute: int = 0, interval=PeriodicInterval.DAILY) -> PeriodicConfig:
    """Periodic config whose first occurrence lies far in the future."""
    return PeriodicConfig(
        start_at=datetime(2099, 1, day, hour, minute, tzinfo=timezone.utc),
        periodic_interval=interval,
    )


@pytest.fixture
def backend() -> SchedulerBackend:
    """Create a backend that is never started; jobs stay pending."""
    return SchedulerBackend(SchedulerConfig(name="registry-tests", timezone="UTC"))


@pytest.fixture
def registry(backend: SchedulerBackend) -> JobRegistry:
    return JobRegistry(backend)


class TestManualJobs:
    """Tests for one-off harvest jobs."""

    def test_schedule_provider_job(self, registry: JobRegistry, backend: SchedulerBackend) -> None:
        """Test scheduling a provider harvest."""
        key = registry.schedule_provider_job("diku", "token-1", "provider-1")

        assert key == JobKey(name="provider-1", group="diku")
        assert backend.check_exists(key)
        assert "diku" in backend.get_job_group_names()

    def test_provider_job_conflict(self, registry: JobRegistry) -> None:
        """Test a second harvest of the same provider is rejected."""
        registry.schedule_provider_job("diku", "token-1", "provider-1")

        with pytest.raises(SchedulingConflict) as exc_info:
            registry.schedule_provider_job("diku", "token-2", "provider-1")

        assert exc_info.value.message == (
            "A job for provider with id 'provider-1' is already scheduled/running"
        )
        assert exc_info.value.tenant_id == "diku"
        assert exc_info.value.job_id == "diku.provider-1"

    def test_different_providers_allowed(self, registry: JobRegistry, backend: SchedulerBackend) -> None:
        """Test providers of one tenant can be harvested side by side."""
        registry.schedule_provider_job("diku", "token", "provider-1")
        registry.schedule_provider_job("diku", "token", "provider-2")

        assert len(backend.get_job_keys(group="diku")) == 2

    def test_same_provider_other_tenant_allowed(self, registry: JobRegistry) -> None:
        """Test provider ids are scoped by tenant."""
        registry.schedule_provider_job("diku", "token", "provider-1")
        key = registry.schedule_provider_job("other", "token", "provider-1")

        assert key.group == "other"

    def test_schedule_tenant_job(self, registry: JobRegistry, backend: SchedulerBackend) -> None:
        """Test scheduling a whole-tenant harvest."""
        key = registry.schedule_tenant_job("diku", "token")

        assert key == JobKey(name="diku", group="diku")
        assert backend.check_exists(key)

    def test_tenant_job_conflict(self, registry: JobRegistry) -> None:
        """Test a second tenant harvest is rejected."""
        registry.schedule_tenant_job("diku", "token")

        with pytest.raises(SchedulingConflict, match="Harvesting for tenant 'diku' is already in progress"):
            registry.schedule_tenant_job("diku", "token")

    def test_tenant_job_blocked_by_provider_job(self, registry: JobRegistry) -> None:
        """Test any job in the tenant's group blocks a tenant harvest."""
        registry.schedule_provider_job("diku", "token", "provider-1")

        with pytest.raises(SchedulingConflict):
            registry.schedule_tenant_job("diku", "token")

    def test_tenant_job_not_blocked_by_recurring_job(self, registry: JobRegistry) -> None:
        """Test the periodic schedule does not block a manual harvest."""
        registry.create_or_update_job(future_config(), "diku")

        key = registry.schedule_tenant_job("diku", "token")

        assert key == JobKey.manual_tenant("diku")

    def test_backend_race_surfaces_as_conflict(self) -> None:
        """Test a backend rejecting a duplicate is reported as a conflict."""
        backend = MagicMock()
        backend.check_exists.return_value = False
        backend.get_job_group_names.return_value = set()
        backend.add_job.side_effect = SchedulingConflict("Job diku.diku already exists")

        with pytest.raises(SchedulingConflict):
            JobRegistry(backend).schedule_tenant_job("diku", "token")


class TestRecurringJobs:
    """Tests for tenants' periodic schedules."""

    def test_create_job(self, registry: JobRegistry, backend: SchedulerBackend, caplog) -> None:
        """Test installing a new periodic schedule."""
        with caplog.at_level(logging.INFO, logger=REGISTRY_LOGGER):
            registry.create_or_update_job(future_config(), "diku")

        key = JobKey.recurring("diku")
        assert backend.check_exists(key)
        assert key.job_id == "DEFAULT.diku"
        assert registry.get_next_fire_time("diku") == datetime(2099, 1, 15, 8, 0, tzinfo=timezone.utc)
        assert "Tenant: diku, Scheduled new job, next trigger:" in caplog.text

    def test_update_job_in_place(self, registry: JobRegistry, backend: SchedulerBackend, caplog) -> None:
        """Test updating a schedule replaces the trigger under the same job id."""
        registry.create_or_update_job(future_config(), "diku")

        with caplog.at_level(logging.INFO, logger=REGISTRY_LOGGER):
            registry.create_or_update_job(future_config(day=20, hour=9, minute=15), "diku")

        assert backend.get_job_keys() == [JobKey.recurring("diku")]
        assert registry.get_next_fire_time("diku") == datetime(2099, 1, 20, 9, 15, tzinfo=timezone.utc)
        assert "Tenant: diku, Updated job trigger, next trigger:" in caplog.text

    def test_none_config_is_noop(self, registry: JobRegistry, backend: SchedulerBackend, caplog) -> None:
        """Test a missing configuration leaves the schedule untouched."""
        with caplog.at_level(logging.INFO, logger=REGISTRY_LOGGER):
            registry.create_or_update_job(None, "diku")

        assert not backend.check_exists(JobKey.recurring("diku"))
        assert "Tenant: diku, No PeriodicConfig present" in caplog.text

    def test_uncompilable_config_keeps_existing_job(
        self, registry: JobRegistry, backend: SchedulerBackend, caplog
    ) -> None:
        """Test an unknown cadence is logged and changes nothing."""
        registry.create_or_update_job(future_config(), "diku")

        with caplog.at_level(logging.ERROR, logger=REGISTRY_LOGGER):
            registry.create_or_update_job(future_config(interval=None), "diku")

        assert registry.get_next_fire_time("diku") == datetime(2099, 1, 15, 8, 0, tzinfo=timezone.utc)
        assert "Tenant: diku, Error creating job trigger" in caplog.text

    def test_missed_schedule_fires_now(self, registry: JobRegistry) -> None:
        """Test a schedule whose first occurrence passed fires right away."""
        config = PeriodicConfig(
            start_at=datetime(2020, 1, 1, 8, 0, tzinfo=timezone.utc),
            periodic_interval=PeriodicInterval.DAILY,
        )
        before = datetime.now(timezone.utc)

        registry.create_or_update_job(config, "diku")

        next_run = registry.get_next_fire_time("diku")
        assert before <= next_run <= datetime.now(timezone.utc)

    def test_backend_errors_are_logged(self, caplog) -> None:
        """Test backend errors do not escape create_or_update_job."""
        backend = MagicMock()
        backend.timezone = timezone.utc
        backend.check_exists.side_effect = RuntimeError("store offline")

        with caplog.at_level(logging.ERROR, logger=REGISTRY_LOGGER):
            JobRegistry(backend).create_or_update_job(future_config(), "diku")

        backend.add_job.assert_not_called()
        assert "Tenant: diku, Error scheduling job for tenant, store offline" in caplog.text

    def test_delete_job(self, registry: JobRegistry, backend: SchedulerBackend, caplog) -> None:
        """Test removing a periodic schedule."""
        registry.create_or_update_job(future_config(), "diku")

        with caplog.at_level(logging.INFO, logger=REGISTRY_LOGGER):
            registry.delete_job("diku")

        assert not backend.check_exists(JobKey.recurring("diku"))
        assert registry.get_next_fire_time("diku") is None
        assert "Tenant: diku, removed job from schedule" in caplog.text

    def test_delete_missing_job_warns(self, registry: JobRegistry, caplog) -> None:
        """Test removing an absent schedule only warns."""
        with caplog.at_level(logging.WARNING, logger=REGISTRY_LOGGER):
            registry.delete_job("diku")

        assert "Tenant: diku, no scheduled job found" in caplog.text

    def test_delete_keeps_manual_jobs(self, registry: JobRegistry, backend: SchedulerBackend) -> None:
        """Test removing a schedule leaves manual jobs alone."""
        registry.create_or_update_job(future_config(), "diku")
        registry.schedule_provider_job("diku", "token", "provider-1")

        registry.delete_job("diku")

        assert backend.get_job_keys() == [JobKey.manual_provider("diku", "provider-1")]

    def test_delete_backend_error_is_logged(self, caplog) -> None:
        """Test backend errors do not escape delete_job."""
        backend = MagicMock()
        backend.check_exists.return_value = True
        backend.remove_job.side_effect = RuntimeError("store offline")

        with caplog.at_level(logging.ERROR, logger=REGISTRY_LOGGER):
            JobRegistry(backend).delete_job("diku")

        assert "Tenant: diku, error deleting job: store offline" in caplog.text
