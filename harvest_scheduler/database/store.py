"""SQLAlchemy implementation of the periodic configuration store.

Repository calls are blocking, so each one runs in a worker thread and
the event loop stays free while the database works.
"""

import asyncio
import logging
from datetime import tzinfo
from typing import Dict, Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from harvest_scheduler.database.connection import get_db_session
from harvest_scheduler.database.repositories import PeriodicConfigRepository
from harvest_scheduler.scheduler.models import PeriodicConfig
from harvest_scheduler.scheduler.trigger_compiler import resolve_timezone

logger = logging.getLogger(__name__)


class SqlPeriodicConfigStore:
    """PeriodicConfigStore backed by a SQLAlchemy database.

    Naive times are read as local to ``zone``, which should be the
    scheduler's zone so stored anchors compile to the same hour.
    """

    def __init__(self, session_maker: sessionmaker, zone: Union[str, tzinfo, None] = None) -> None:
        self._session_maker = session_maker
        self._zone = resolve_timezone(zone)

    async def get(self, tenant_id: str) -> Optional[PeriodicConfig]:
        return await asyncio.to_thread(self._get, tenant_id)

    async def upsert(self, tenant_id: str, config: PeriodicConfig) -> None:
        await asyncio.to_thread(self._upsert, tenant_id, config)

    async def list_all(self) -> Dict[str, PeriodicConfig]:
        return await asyncio.to_thread(self._list_all)

    async def delete(self, tenant_id: str) -> bool:
        return await asyncio.to_thread(self._delete, tenant_id)

    def _repository(self, session: Session) -> PeriodicConfigRepository:
        return PeriodicConfigRepository(session, self._zone)

    def _get(self, tenant_id: str) -> Optional[PeriodicConfig]:
        with get_db_session(self._session_maker) as session:
            return self._repository(session).get(tenant_id)

    def _upsert(self, tenant_id: str, config: PeriodicConfig) -> None:
        with get_db_session(self._session_maker) as session:
            self._repository(session).upsert(tenant_id, config)
        logger.debug(f"Tenant: {tenant_id}, stored periodic config")

    def _list_all(self) -> Dict[str, PeriodicConfig]:
        with get_db_session(self._session_maker) as session:
            return self._repository(session).get_all()

    def _delete(self, tenant_id: str) -> bool:
        with get_db_session(self._session_maker) as session:
            return self._repository(session).delete(tenant_id)
