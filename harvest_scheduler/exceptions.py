"""Exceptions for harvest scheduling operations."""


class HarvestSchedulerError(Exception):
    """Base exception for harvest scheduling errors."""

    def __init__(self, message: str, tenant_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id

    def __str__(self) -> str:
        if self.tenant_id:
            return f"{self.message} (tenant: {self.tenant_id})"
        return self.message


class SchedulingConflict(HarvestSchedulerError):
    """Raised when a job with the same identity is already scheduled or running."""

    def __init__(
        self,
        message: str,
        tenant_id: str | None = None,
        job_id: str | None = None,
    ) -> None:
        super().__init__(message, tenant_id)
        self.job_id = job_id


class SchedulerUnavailable(HarvestSchedulerError):
    """Raised when the scheduler backend is used after it was shut down."""
    pass
