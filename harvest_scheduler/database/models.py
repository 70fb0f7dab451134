"""
SQLAlchemy models for the harvest scheduler database.

Stores each tenant's periodic harvesting configuration. Timestamps are
kept as naive UTC values so every backend (SQLite included) round-trips
them identically.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Create base class for all models
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PeriodicConfigRecord(Base):
    """
    Periodic configuration of a tenant.

    One row per tenant; the tenant identifier is the primary key.
    ``last_triggered_at`` is written by the job executor only, all other
    columns by administrative callers.
    """

    __tablename__ = "periodic_configs"

    tenant_id: Mapped[str] = mapped_column(String, primary_key=True)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    periodic_interval: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary representation."""
        return {
            "tenant_id": self.tenant_id,
            "start_at": self.start_at.isoformat(),
            "periodic_interval": self.periodic_interval,
            "last_triggered_at": (
                self.last_triggered_at.isoformat() if self.last_triggered_at else None
            ),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<PeriodicConfigRecord(tenant_id='{self.tenant_id}', "
            f"periodic_interval='{self.periodic_interval}')>"
        )
