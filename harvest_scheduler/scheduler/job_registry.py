"""Job registry for tenant harvest schedules.

The JobRegistry is the only writer of the scheduler backend. It keeps at
most one recurring job per tenant, compiled from the tenant's periodic
configuration, and admits one-off manual jobs only while no conflicting
job is scheduled or running.

Manual job admission is a best-effort existence check; if two installs
race, the backend's own job id uniqueness rejects the second one.
"""

import logging
from datetime import datetime
from typing import Optional

from harvest_scheduler.exceptions import SchedulingConflict
from harvest_scheduler.scheduler.backend import SchedulerBackend
from harvest_scheduler.scheduler.models import HarvestJob, JobKey, JobKind, PeriodicConfig
from harvest_scheduler.scheduler.trigger_compiler import compile_trigger

logger = logging.getLogger(__name__)


class JobRegistry:
    """Creates, updates and removes harvest jobs.

    Example:
        registry = JobRegistry(backend)
        registry.create_or_update_job(config, "diku")
        registry.schedule_provider_job("diku", token, provider_id)
    """

    def __init__(self, backend: SchedulerBackend) -> None:
        """Initialize the registry.

        Args:
            backend: Scheduler backend holding the jobs
        """
        self._backend = backend

    @property
    def backend(self) -> SchedulerBackend:
        return self._backend

    def schedule_provider_job(self, tenant_id: str, token: str, provider_id: str) -> JobKey:
        """Run a one-off harvest of a single provider now.

        Args:
            tenant_id: Tenant owning the provider
            token: Auth token passed to the start interface
            provider_id: Provider to harvest

        Returns:
            Key of the installed job

        Raises:
            SchedulingConflict: If a job for this provider is scheduled or running
        """
        key = JobKey.manual_provider(tenant_id, provider_id)
        if self._backend.check_exists(key):
            raise SchedulingConflict(
                f"A job for provider with id '{provider_id}' is already scheduled/running",
                tenant_id=tenant_id,
                job_id=key.job_id,
            )

        job = HarvestJob(
            kind=JobKind.MANUAL_PROVIDER,
            key=key,
            tenant_id=tenant_id,
            token=token,
            provider_id=provider_id,
        )
        self._backend.add_job(job)
        logger.info(f"Tenant: {tenant_id}, scheduled harvest of provider {provider_id}")
        return key

    def schedule_tenant_job(self, tenant_id: str, token: str) -> JobKey:
        """Run a one-off harvest of all of a tenant's providers now.

        Args:
            tenant_id: Tenant to harvest
            token: Auth token passed to the start interface

        Returns:
            Key of the installed job

        Raises:
            SchedulingConflict: If any job of the tenant is scheduled or running
        """
        key = JobKey.manual_tenant(tenant_id)
        if self._backend.check_exists(key) or tenant_id in self._backend.get_job_group_names():
            raise SchedulingConflict(
                f"Harvesting for tenant '{tenant_id}' is already in progress",
                tenant_id=tenant_id,
                job_id=key.job_id,
            )

        job = HarvestJob(kind=JobKind.MANUAL_TENANT, key=key, tenant_id=tenant_id, token=token)
        self._backend.add_job(job)
        logger.info(f"Tenant: {tenant_id}, scheduled harvest of tenant")
        return key

    def create_or_update_job(self, config: Optional[PeriodicConfig], tenant_id: str) -> None:
        """Install or replace the recurring job of a tenant.

        Scheduler errors are logged, not raised.

        Args:
            config: The tenant's periodic configuration
            tenant_id: Tenant owning the configuration
        """
        if config is None:
            logger.info(f"Tenant: {tenant_id}, No PeriodicConfig present")
            return

        trigger = compile_trigger(tenant_id, config, self._backend.timezone)
        if trigger is None:
            logger.error(f"Tenant: {tenant_id}, Error creating job trigger")
            return

        key = JobKey.recurring(tenant_id)
        try:
            if self._backend.check_exists(key):
                next_run = self._backend.reschedule_job(key, trigger)
                logger.info(
                    f"Tenant: {tenant_id}, Updated job trigger, next trigger: {next_run}"
                )
            else:
                job = HarvestJob(kind=JobKind.RECURRING, key=key, tenant_id=tenant_id)
                next_run = self._backend.add_job(job, trigger)
                logger.info(
                    f"Tenant: {tenant_id}, Scheduled new job, next trigger: {next_run}"
                )
        except Exception as e:
            logger.error(f"Tenant: {tenant_id}, Error scheduling job for tenant, {e}")

    def delete_job(self, tenant_id: str) -> None:
        """Remove the recurring job of a tenant.

        A missing job is logged as a warning. Scheduler errors are logged,
        not raised.

        Args:
            tenant_id: Tenant whose schedule to remove
        """
        key = JobKey.recurring(tenant_id)
        try:
            if self._backend.check_exists(key):
                self._backend.remove_job(key)
                logger.info(f"Tenant: {tenant_id}, removed job from schedule")
            else:
                logger.warning(f"Tenant: {tenant_id}, no scheduled job found")
        except Exception as e:
            logger.error(f"Tenant: {tenant_id}, error deleting job: {e}")

    def get_next_fire_time(self, tenant_id: str) -> Optional[datetime]:
        """When the recurring job of a tenant fires next, if it exists."""
        return self._backend.get_next_fire_time(JobKey.recurring(tenant_id))
