"""Domain types shared by the trigger compiler, registry and executor."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

DEFAULT_GROUP = "DEFAULT"

# Keys of the opaque job data passed through the scheduler backend
DATAKEY_TENANT = "tenantId"
DATAKEY_TOKEN = "token"
DATAKEY_PROVIDER_ID = "providerId"


class PeriodicInterval(Enum):
    """Cadence of a tenant's periodic harvest."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Any) -> Optional["PeriodicInterval"]:
        """Parse a cadence value, returning None for unset or unknown values."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass
class PeriodicConfig:
    """Periodic harvesting configuration of a single tenant.

    Attributes:
        start_at: Anchor defining time of day and, for weekly/monthly
            cadence, the weekday or day of month
        periodic_interval: Cadence; None disables scheduling
        last_triggered_at: When the last successful periodic run fired
    """

    start_at: datetime
    periodic_interval: Optional[PeriodicInterval] = None
    last_triggered_at: Optional[datetime] = None


@dataclass(frozen=True)
class JobKey:
    """Two-part identity of a job in the scheduler backend."""

    name: str
    group: str = DEFAULT_GROUP

    @property
    def job_id(self) -> str:
        """Backend job id, rendered as ``group.name``."""
        return f"{self.group}.{self.name}"

    def __str__(self) -> str:
        return self.job_id

    @classmethod
    def recurring(cls, tenant_id: str) -> "JobKey":
        return cls(name=tenant_id)

    @classmethod
    def manual_tenant(cls, tenant_id: str) -> "JobKey":
        return cls(name=tenant_id, group=tenant_id)

    @classmethod
    def manual_provider(cls, tenant_id: str, provider_id: str) -> "JobKey":
        return cls(name=provider_id, group=tenant_id)


class JobKind(Enum):
    """Type of a scheduled harvest job."""

    RECURRING = "recurring"  # Periodic tenant harvest
    MANUAL_TENANT = "manual_tenant"  # One-off harvest of a whole tenant
    MANUAL_PROVIDER = "manual_provider"  # One-off harvest of a single provider


@dataclass(frozen=True)
class HarvestJob:
    """A harvest job as handed to the executor when its trigger fires."""

    kind: JobKind
    key: JobKey
    tenant_id: str
    token: Optional[str] = None
    provider_id: Optional[str] = None

    @property
    def job_data(self) -> Dict[str, str]:
        """Opaque job parameters stored with the backend job."""
        data = {DATAKEY_TENANT: self.tenant_id}
        if self.token is not None:
            data[DATAKEY_TOKEN] = self.token
        if self.provider_id is not None:
            data[DATAKEY_PROVIDER_ID] = self.provider_id
        return data

    @classmethod
    def from_job_data(
        cls,
        kind: JobKind,
        key: JobKey,
        job_data: Dict[str, Any],
    ) -> "HarvestJob":
        return cls(
            kind=kind,
            key=key,
            tenant_id=job_data.get(DATAKEY_TENANT, key.group),
            token=job_data.get(DATAKEY_TOKEN),
            provider_id=job_data.get(DATAKEY_PROVIDER_ID),
        )
