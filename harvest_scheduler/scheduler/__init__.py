"""Scheduling of periodic and manual harvest jobs.

Tenants' periodic configurations are compiled into cron-like triggers,
installed by the job registry in the scheduler backend, and executed by
the job executor, which calls the harvester's start interface.
"""

from harvest_scheduler.scheduler.backend import JobCompletion, SchedulerBackend
from harvest_scheduler.scheduler.config_store import PeriodicConfigStore
from harvest_scheduler.scheduler.job_executor import (
    ExecutionContext,
    ExecutionState,
    FailureReason,
    HarvestJobExecutor,
    JobExecutionResult,
)
from harvest_scheduler.scheduler.job_registry import JobRegistry
from harvest_scheduler.scheduler.models import (
    HarvestJob,
    JobKey,
    JobKind,
    PeriodicConfig,
    PeriodicInterval,
)
from harvest_scheduler.scheduler.trigger_compiler import HarvestTrigger, compile_trigger

__all__ = [
    "ExecutionContext",
    "ExecutionState",
    "FailureReason",
    "HarvestJob",
    "HarvestJobExecutor",
    "HarvestTrigger",
    "JobCompletion",
    "JobExecutionResult",
    "JobKey",
    "JobKind",
    "JobRegistry",
    "PeriodicConfig",
    "PeriodicConfigStore",
    "PeriodicInterval",
    "SchedulerBackend",
    "compile_trigger",
]
