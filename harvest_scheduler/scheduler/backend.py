"""Scheduler backend for harvest jobs.

The SchedulerBackend wraps an APScheduler AsyncIOScheduler and exposes
the operations the job registry needs: jobs addressed by a two-part
JobKey, recurring cron jobs and one-shot "run now" jobs, in-place
rescheduling, and completion listeners receiving one JobExecutionResult
per firing.

Jobs reference the module-level run_scheduled_job() function and plain
keyword arguments only, so they can be kept in a persistent job store.
The function finds its backend by scheduler name and hands the job to
that backend's executor.
"""

import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
)
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.job import Job as APJob
from apscheduler.jobstores.base import ConflictingIdError, JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from harvest_scheduler.config import SchedulerConfig
from harvest_scheduler.exceptions import SchedulerUnavailable, SchedulingConflict
from harvest_scheduler.scheduler.job_executor import (
    ExecutionFailure,
    FailureReason,
    HarvestJobExecutor,
    JobExecutionResult,
)
from harvest_scheduler.scheduler.models import (
    DEFAULT_GROUP,
    HarvestJob,
    JobKey,
    JobKind,
)
from harvest_scheduler.scheduler.trigger_compiler import HarvestTrigger, resolve_timezone

logger = logging.getLogger(__name__)

# Running backends by scheduler name, used to dispatch fired jobs
_backends: "weakref.WeakValueDictionary[str, SchedulerBackend]" = weakref.WeakValueDictionary()


@dataclass(frozen=True)
class JobCompletion:
    """Outcome of a single job firing, delivered to completion listeners."""

    job_key: JobKey
    result: JobExecutionResult

    @property
    def success(self) -> bool:
        return self.result.success


CompletionListener = Callable[[JobCompletion], None]


async def run_scheduled_job(
    scheduler_name: str,
    kind: str,
    group: str,
    name: str,
    job_data: Dict[str, Any],
) -> JobExecutionResult:
    """Entry point invoked by APScheduler when a harvest job fires.

    Args:
        scheduler_name: Name of the backend owning the job
        kind: JobKind value of the job
        group: Group of the job key
        name: Name of the job key
        job_data: Opaque job parameters

    Returns:
        Execution result of the job
    """
    job = HarvestJob.from_job_data(JobKind(kind), JobKey(name=name, group=group), job_data)

    backend = _backends.get(scheduler_name)
    if backend is None:
        failure = ExecutionFailure(
            FailureReason.CONTEXT_UNAVAILABLE,
            f"Tenant: {job.tenant_id}, error getting scheduler context: "
            f"no running scheduler named '{scheduler_name}'",
        )
        logger.error(failure.message)
        return JobExecutionResult.for_job(job, datetime.now(timezone.utc)).fail(failure)

    return await backend.executor.execute(job, datetime.now(backend.timezone))


class SchedulerBackend:
    """Job store and trigger evaluation for harvest jobs.

    Example:
        backend = SchedulerBackend(SchedulerConfig(), executor)
        backend.add_completion_listener(on_completion)
        backend.start()
        ...
        backend.shutdown()
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        executor: Optional[HarvestJobExecutor] = None,
    ) -> None:
        """Initialize the backend.

        Args:
            config: Scheduler configuration
            executor: Executor for fired jobs; without one, every firing
                fails for lack of a runtime context
        """
        self._config = config or SchedulerConfig()
        self._executor = executor or HarvestJobExecutor()
        self._timezone = resolve_timezone(self._config.timezone)
        self._lock = threading.RLock()
        self._listeners: List[CompletionListener] = []

        # Jobs installed through this backend; one-shot jobs stay here until
        # their firing completes, after APScheduler already dropped them
        self._jobs: Dict[str, HarvestJob] = {}
        self._closed = False

        self._scheduler = self._create_scheduler()
        self._setup_listeners()

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def timezone(self):
        return self._timezone

    @property
    def executor(self) -> HarvestJobExecutor:
        return self._executor

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the APScheduler instance."""
        if self._config.jobstore_url:
            from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore

            jobstores = {"default": SQLAlchemyJobStore(url=self._config.jobstore_url)}
        else:
            jobstores = {"default": MemoryJobStore()}

        executors = {"default": AsyncIOExecutor()}

        job_defaults = {
            "coalesce": True,  # Missed runs fire once
            "max_instances": 1,  # Firings of a job never overlap
            "misfire_grace_time": None,  # Late runs are never dropped
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone=self._timezone,
        )

    def _setup_listeners(self) -> None:
        """Set up APScheduler event listeners."""
        self._scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES,
        )

    def start(self) -> None:
        """Start evaluating triggers. Must be called with a running event loop."""
        if self._closed:
            raise SchedulerUnavailable(f"Scheduler '{self.name}' was shut down")
        if self._scheduler.running:
            logger.warning(f"Scheduler '{self.name}' already running")
            return

        existing = _backends.get(self.name)
        if existing is not None and existing is not self:
            raise SchedulerUnavailable(f"A scheduler named '{self.name}' is already running")
        _backends[self.name] = self

        self._scheduler.start()

        # Pick up jobs kept in a persistent job store
        with self._lock:
            for aps_job in self._scheduler.get_jobs():
                self._jobs.setdefault(aps_job.id, self._harvest_job_of(aps_job))

        logger.info(f"Scheduler '{self.name}' started with {len(self._jobs)} jobs")

    def shutdown(self, wait: bool = True) -> None:
        """Stop the scheduler; the backend cannot be restarted afterwards."""
        if self._closed:
            return
        self._closed = True

        if _backends.get(self.name) is self:
            del _backends[self.name]

        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        logger.info(f"Scheduler '{self.name}' stopped")

    def add_completion_listener(self, listener: CompletionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_completion_listener(self, listener: CompletionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def check_exists(self, key: JobKey) -> bool:
        """Check whether a job is scheduled or still running under this key."""
        self._ensure_open()
        with self._lock:
            if key.job_id in self._jobs:
                return True
            return self._scheduler.get_job(key.job_id) is not None

    def get_job_group_names(self) -> Set[str]:
        """Groups holding at least one scheduled or running job."""
        self._ensure_open()
        with self._lock:
            groups = {job.key.group for job in self._jobs.values()}
            for aps_job in self._scheduler.get_jobs():
                groups.add(self._harvest_job_of(aps_job).key.group)
            return groups

    def get_job_keys(self, group: Optional[str] = None) -> List[JobKey]:
        """Keys of the scheduled or running jobs, optionally within one group."""
        self._ensure_open()
        with self._lock:
            keys = {job.key for job in self._jobs.values()}
            for aps_job in self._scheduler.get_jobs():
                keys.add(self._harvest_job_of(aps_job).key)
        return sorted(
            (key for key in keys if group is None or key.group == group),
            key=lambda k: k.job_id,
        )

    def add_job(
        self,
        job: HarvestJob,
        trigger: Optional[HarvestTrigger] = None,
    ) -> Optional[datetime]:
        """Install a job.

        Args:
            job: The job to install
            trigger: Recurring trigger; None runs the job once, immediately

        Returns:
            When the job fires next

        Raises:
            SchedulingConflict: If a job with the same key exists
        """
        self._ensure_open()
        now = datetime.now(self._timezone)
        job_id = job.key.job_id

        if trigger is None:
            aps_trigger = DateTrigger(run_date=now, timezone=self._timezone)
            next_run = now
        else:
            aps_trigger = trigger.to_cron_trigger()
            next_run = trigger.next_fire_time(now)

        options: Dict[str, Any] = {}
        if next_run is not None:
            options["next_run_time"] = next_run

        with self._lock:
            if self.check_exists(job.key):
                raise SchedulingConflict(
                    f"Job {job_id} already exists", tenant_id=job.tenant_id, job_id=job_id
                )

            self._jobs[job_id] = job
            try:
                self._scheduler.add_job(
                    run_scheduled_job,
                    trigger=aps_trigger,
                    kwargs={
                        "scheduler_name": self.name,
                        "kind": job.kind.value,
                        "group": job.key.group,
                        "name": job.key.name,
                        "job_data": job.job_data,
                    },
                    id=job_id,
                    name=f"{job.kind.value} {job_id}",
                    replace_existing=False,
                    **options,
                )
            except ConflictingIdError as e:
                del self._jobs[job_id]
                raise SchedulingConflict(
                    f"Job {job_id} already exists", tenant_id=job.tenant_id, job_id=job_id
                ) from e
            except Exception:
                del self._jobs[job_id]
                raise

        logger.debug(f"Added job {job_id} to APScheduler")
        return next_run

    def reschedule_job(self, key: JobKey, trigger: HarvestTrigger) -> Optional[datetime]:
        """Replace the trigger of an existing job, keeping its identity.

        Returns:
            When the job fires next

        Raises:
            apscheduler.jobstores.base.JobLookupError: If no such job exists
        """
        self._ensure_open()
        next_run = trigger.next_fire_time(datetime.now(self._timezone))

        changes: Dict[str, Any] = {"trigger": trigger.to_cron_trigger()}
        if next_run is not None:
            changes["next_run_time"] = next_run

        with self._lock:
            self._scheduler.modify_job(key.job_id, **changes)

        logger.debug(f"Rescheduled job {key.job_id} in APScheduler")
        return next_run

    def remove_job(self, key: JobKey) -> bool:
        """Remove a job.

        Returns:
            True if the job existed
        """
        self._ensure_open()
        with self._lock:
            known = self._jobs.pop(key.job_id, None) is not None
            try:
                self._scheduler.remove_job(key.job_id)
            except JobLookupError:
                return known

        logger.debug(f"Removed job {key.job_id} from APScheduler")
        return True

    def trigger_job(self, key: JobKey) -> bool:
        """Fire an existing job now, outside of its schedule.

        Returns:
            True if the job exists
        """
        self._ensure_open()
        try:
            with self._lock:
                self._scheduler.modify_job(
                    key.job_id, next_run_time=datetime.now(self._timezone)
                )
        except JobLookupError:
            return False
        return True

    def get_next_fire_time(self, key: JobKey) -> Optional[datetime]:
        """When the job fires next, or None if it is unknown or paused."""
        self._ensure_open()
        aps_job = self._scheduler.get_job(key.job_id)
        if aps_job is None:
            return None
        return getattr(aps_job, "next_run_time", None)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SchedulerUnavailable(f"Scheduler '{self.name}' was shut down")

    def _harvest_job_of(self, aps_job: APJob) -> HarvestJob:
        """Rebuild the harvest job description of an APScheduler job."""
        known = self._jobs.get(aps_job.id)
        if known is not None:
            return known
        kwargs = aps_job.kwargs or {}
        if "group" in kwargs and "name" in kwargs:
            key = JobKey(name=kwargs["name"], group=kwargs["group"])
        else:
            group, _, name = aps_job.id.partition(".")
            key = JobKey(name=name, group=group)
        kind = JobKind(kwargs.get("kind", self._infer_kind(key).value))
        return HarvestJob.from_job_data(kind, key, kwargs.get("job_data", {}))

    @staticmethod
    def _infer_kind(key: JobKey) -> JobKind:
        if key.group == DEFAULT_GROUP:
            return JobKind.RECURRING
        if key.name == key.group:
            return JobKind.MANUAL_TENANT
        return JobKind.MANUAL_PROVIDER

    def _lookup_finished_job(self, job_id: str) -> HarvestJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                aps_job = self._scheduler.get_job(job_id)
                if aps_job is not None:
                    return self._harvest_job_of(aps_job)
                group, _, name = job_id.partition(".")
                key = JobKey(name=name, group=group)
                return HarvestJob(kind=self._infer_kind(key), key=key, tenant_id=group)
            if job.kind is not JobKind.RECURRING:
                del self._jobs[job_id]
            return job

    def _on_job_event(self, event: Any) -> None:
        """Translate APScheduler job events into completions."""
        if event.code == EVENT_JOB_MISSED:
            logger.warning(f"Job {event.job_id} missed scheduled run")
            return

        job = self._lookup_finished_job(event.job_id)

        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning(
                f"Tenant: {job.tenant_id}, job {event.job_id} skipped, previous run still active"
            )
            return

        if event.code == EVENT_JOB_EXECUTED and isinstance(event.retval, JobExecutionResult):
            result = event.retval
        else:
            exception = getattr(event, "exception", None) or "Unknown error"
            failure = ExecutionFailure(
                FailureReason.UNEXPECTED,
                f"Tenant: {job.tenant_id}, job {event.job_id} failed: {exception}",
            )
            logger.error(failure.message)
            fire_time = getattr(event, "scheduled_run_time", None) or datetime.now(self._timezone)
            result = JobExecutionResult.for_job(job, fire_time).fail(failure)

        completion = JobCompletion(job_key=job.key, result=result)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(completion)
            except Exception as e:
                logger.error(f"Completion listener failed for job {event.job_id}: {e}")
