"""Database repositories for the harvest scheduler.

Translates between PeriodicConfigRecord rows and the PeriodicConfig
domain type used by the scheduler. Times are stored as naive UTC; naive
input is taken as local to the scheduler's zone, as the trigger compiler
reads it.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session

from harvest_scheduler.database.models import PeriodicConfigRecord
from harvest_scheduler.scheduler.models import PeriodicConfig, PeriodicInterval
from harvest_scheduler.scheduler.trigger_compiler import localize, resolve_timezone


def _to_db(value: Optional[datetime], zone: tzinfo) -> Optional[datetime]:
    if value is None:
        return None
    return localize(value, zone).astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class PeriodicConfigRepository:
    """
    Repository for periodic configuration database operations.
    """

    def __init__(self, session: Session, zone: Union[str, tzinfo, None] = None):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
            zone: Zone naive times are local to (default: system local)
        """
        self.session = session
        self.zone = resolve_timezone(zone)

    def get_record(self, tenant_id: str) -> Optional[PeriodicConfigRecord]:
        return self.session.get(PeriodicConfigRecord, tenant_id)

    def get(self, tenant_id: str) -> Optional[PeriodicConfig]:
        """
        Get the periodic configuration of a tenant.

        Args:
            tenant_id: Tenant identifier

        Returns:
            PeriodicConfig if found, None otherwise
        """
        record = self.get_record(tenant_id)
        if record is None:
            return None
        return self._to_config(record)

    def get_all(self) -> Dict[str, PeriodicConfig]:
        """
        Get the periodic configurations of all tenants.

        Returns:
            Mapping of tenant identifier to configuration
        """
        records: List[PeriodicConfigRecord] = (
            self.session.query(PeriodicConfigRecord)
            .order_by(PeriodicConfigRecord.tenant_id)
            .all()
        )
        return {record.tenant_id: self._to_config(record) for record in records}

    def upsert(self, tenant_id: str, config: PeriodicConfig) -> PeriodicConfigRecord:
        """
        Create or replace the periodic configuration of a tenant.

        Args:
            tenant_id: Tenant identifier
            config: Configuration to store

        Returns:
            The stored record
        """
        interval = PeriodicInterval.parse(config.periodic_interval)
        record = self.get_record(tenant_id)
        if record is None:
            record = PeriodicConfigRecord(tenant_id=tenant_id)
            self.session.add(record)

        record.start_at = _to_db(config.start_at, self.zone)
        record.periodic_interval = interval.value if interval else None
        record.last_triggered_at = _to_db(config.last_triggered_at, self.zone)

        self.session.flush()
        return record

    def delete(self, tenant_id: str) -> bool:
        """
        Delete the periodic configuration of a tenant.

        Args:
            tenant_id: Tenant identifier

        Returns:
            True if a configuration was deleted
        """
        record = self.get_record(tenant_id)
        if record is None:
            return False
        self.session.delete(record)
        self.session.flush()
        return True

    @staticmethod
    def _to_config(record: PeriodicConfigRecord) -> PeriodicConfig:
        return PeriodicConfig(
            start_at=_from_db(record.start_at),
            periodic_interval=PeriodicInterval.parse(record.periodic_interval),
            last_triggered_at=_from_db(record.last_triggered_at),
        )
