"""Read/write contract for tenants' periodic configurations."""

from typing import Dict, Optional, Protocol

from harvest_scheduler.scheduler.models import PeriodicConfig


class PeriodicConfigStore(Protocol):
    """Store of periodic configurations, one per tenant.

    The job executor owns ``last_triggered_at``; every other field belongs
    to administrative callers.
    """

    async def get(self, tenant_id: str) -> Optional[PeriodicConfig]:
        ...

    async def upsert(self, tenant_id: str, config: PeriodicConfig) -> None:
        ...

    async def list_all(self) -> Dict[str, PeriodicConfig]:
        ...

    async def delete(self, tenant_id: str) -> bool:
        ...
