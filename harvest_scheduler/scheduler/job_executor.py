"""Job executor for fired harvest jobs.

The HarvestJobExecutor runs when a trigger fires. Execution is a
sequential pipeline:

    START -> CONTEXT_RESOLVED -> WEBHOOK_CALLED -> CONFIG_PERSISTED -> DONE

Any stage may end in FAILED. Failures travel through the pipeline as a
single ExecutionFailure type and leave it as a JobExecutionResult, so the
scheduler's completion listeners see exactly one result per firing.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional

import httpx

from harvest_scheduler.config import WebhookConfig
from harvest_scheduler.scheduler.config_store import PeriodicConfigStore
from harvest_scheduler.scheduler.models import HarvestJob, JobKey, JobKind

logger = logging.getLogger(__name__)


class ExecutionState(Enum):
    """Stage reached by a job execution."""

    START = auto()
    CONTEXT_RESOLVED = auto()
    WEBHOOK_CALLED = auto()
    CONFIG_PERSISTED = auto()
    DONE = auto()
    FAILED = auto()


class FailureReason(Enum):
    """Why a job execution failed."""

    CONTEXT_UNAVAILABLE = "context_unavailable"
    WEBHOOK_UNREACHABLE = "webhook_unreachable"
    WEBHOOK_REJECTED = "webhook_rejected"
    PERSISTENCE_FAILURE = "persistence_failure"
    UNEXPECTED = "unexpected"


class ExecutionFailure(Exception):
    """Failure of one execution stage."""

    def __init__(self, reason: FailureReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


@dataclass
class ExecutionContext:
    """Runtime dependencies of the executor.

    Attributes:
        http_client: Client used to call the harvester's start interface
        config_store: Store holding the tenants' periodic configurations
        base_url: Base URL of the harvester service
        start_path: Path of the start interface below ``base_url``
        tenant_header: Header carrying the tenant identifier
        token_header: Header carrying the auth token of manual jobs
    """

    http_client: httpx.AsyncClient
    config_store: PeriodicConfigStore
    base_url: str
    start_path: str = "/erm-usage-harvester/start"
    tenant_header: str = "X-Okapi-Tenant"
    token_header: str = "X-Okapi-Token"

    @classmethod
    def from_config(
        cls,
        webhook: WebhookConfig,
        http_client: httpx.AsyncClient,
        config_store: PeriodicConfigStore,
    ) -> "ExecutionContext":
        return cls(
            http_client=http_client,
            config_store=config_store,
            base_url=webhook.base_url,
            start_path=webhook.start_path,
            tenant_header=webhook.tenant_header,
            token_header=webhook.token_header,
        )

    def start_url(self, job: HarvestJob) -> str:
        """URL of the start interface for the given job."""
        url = self.base_url.rstrip("/") + self.start_path
        if job.kind is JobKind.MANUAL_PROVIDER and job.provider_id:
            url = f"{url}/{job.provider_id}"
        return url

    def headers(self, job: HarvestJob) -> Dict[str, str]:
        headers = {self.tenant_header: job.tenant_id}
        if job.token:
            headers[self.token_header] = job.token
        return headers


@dataclass
class JobExecutionResult:
    """Result of a single job firing.

    Attributes:
        job_key: Identity of the job that fired
        kind: Type of the job
        tenant_id: Tenant the job ran for
        fire_time: When the trigger fired
        started_at: When execution started
        completed_at: When execution finished
        state: Last stage reached (DONE or FAILED when finished)
        success: Whether execution succeeded
        failure_reason: Why execution failed
        error: Error message if failed
        harvest_started: Whether the start interface accepted the request;
            True on a PERSISTENCE_FAILURE, where harvesting did start
    """

    job_key: JobKey
    kind: JobKind
    tenant_id: str
    fire_time: datetime
    started_at: datetime
    completed_at: Optional[datetime] = None
    state: ExecutionState = ExecutionState.START
    success: bool = False
    failure_reason: Optional[FailureReason] = None
    error: Optional[str] = None
    harvest_started: bool = False

    @classmethod
    def for_job(cls, job: HarvestJob, fire_time: datetime) -> "JobExecutionResult":
        return cls(
            job_key=job.key,
            kind=job.kind,
            tenant_id=job.tenant_id,
            fire_time=fire_time,
            started_at=datetime.now(timezone.utc),
        )

    def fail(self, failure: ExecutionFailure) -> "JobExecutionResult":
        self.state = ExecutionState.FAILED
        self.success = False
        self.failure_reason = failure.reason
        self.error = failure.message
        self.completed_at = datetime.now(timezone.utc)
        return self

    def complete(self) -> "JobExecutionResult":
        self.state = ExecutionState.DONE
        self.success = True
        self.completed_at = datetime.now(timezone.utc)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_key.job_id,
            "kind": self.kind.value,
            "tenant_id": self.tenant_id,
            "fire_time": self.fire_time.isoformat(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "state": self.state.name,
            "success": self.success,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "error": self.error,
            "harvest_started": self.harvest_started,
        }


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class HarvestJobExecutor:
    """Executes fired harvest jobs.

    Every job kind calls the harvester's start interface; recurring jobs
    additionally record the fire time as the tenant's ``last_triggered_at``.

    Example:
        executor = HarvestJobExecutor(context)
        result = await executor.execute(job, fire_time)
    """

    def __init__(self, context: Optional[ExecutionContext] = None) -> None:
        """Initialize the executor.

        Args:
            context: Runtime dependencies; executions fail while it is None
        """
        self._context = context

    @property
    def context(self) -> Optional[ExecutionContext]:
        return self._context

    async def execute(
        self,
        job: HarvestJob,
        fire_time: Optional[datetime] = None,
    ) -> JobExecutionResult:
        """Execute a fired job.

        Never raises; every outcome is returned as a result.

        Args:
            job: The job that fired
            fire_time: When its trigger fired (default: now)

        Returns:
            Execution result
        """
        if fire_time is None:
            fire_time = datetime.now(timezone.utc)
        result = JobExecutionResult.for_job(job, fire_time)

        try:
            context = self._resolve_context(job)
            result.state = ExecutionState.CONTEXT_RESOLVED

            await self._start_harvest(context, job)
            result.state = ExecutionState.WEBHOOK_CALLED
            result.harvest_started = True

            if job.kind is JobKind.RECURRING:
                await self._update_last_triggered_at(context, job.tenant_id, fire_time)
                result.state = ExecutionState.CONFIG_PERSISTED

        except ExecutionFailure as failure:
            logger.error(failure.message)
            return result.fail(failure)
        except Exception as e:
            failure = ExecutionFailure(
                FailureReason.UNEXPECTED,
                f"Tenant: {job.tenant_id}, unexpected error executing job {job.key}: {_describe(e)}",
            )
            logger.exception(failure.message)
            return result.fail(failure)

        logger.info(f"Tenant: {job.tenant_id}, job {job.key} completed")
        return result.complete()

    def _resolve_context(self, job: HarvestJob) -> ExecutionContext:
        if self._context is None:
            raise ExecutionFailure(
                FailureReason.CONTEXT_UNAVAILABLE,
                f"Tenant: {job.tenant_id}, error getting runtime context",
            )
        return self._context

    async def _start_harvest(self, context: ExecutionContext, job: HarvestJob) -> None:
        """Call the harvester's start interface."""
        try:
            response = await context.http_client.get(
                context.start_url(job),
                headers=context.headers(job),
            )
        except httpx.HTTPError as e:
            raise ExecutionFailure(
                FailureReason.WEBHOOK_UNREACHABLE,
                f"Tenant: {job.tenant_id}, error connecting to start interface: {_describe(e)}",
            ) from e

        if response.status_code != 200:
            raise ExecutionFailure(
                FailureReason.WEBHOOK_REJECTED,
                f"Tenant: {job.tenant_id}, error starting job, received "
                f"{response.status_code} {response.reason_phrase} "
                f"from start interface: {response.text}",
            )

        logger.info(f"Tenant: {job.tenant_id}, job started")

    async def _update_last_triggered_at(
        self,
        context: ExecutionContext,
        tenant_id: str,
        fire_time: datetime,
    ) -> None:
        """Record the fire time on the tenant's periodic configuration."""
        try:
            config = await context.config_store.get(tenant_id)
            if config is None:
                raise LookupError("no periodic config found")
            await context.config_store.upsert(
                tenant_id, replace(config, last_triggered_at=fire_time)
            )
        except Exception as e:
            raise ExecutionFailure(
                FailureReason.PERSISTENCE_FAILURE,
                f"Tenant: {tenant_id}, failed updating lastTriggeredAt: {_describe(e)}",
            ) from e
