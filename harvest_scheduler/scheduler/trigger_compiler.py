"""Compilation of periodic configurations into recurring triggers.

A tenant's PeriodicConfig is turned into a HarvestTrigger: a cron-like
schedule derived from the ``start_at`` anchor, an effective start that
resumes after the last successful run, and a fire-and-proceed misfire
policy. Compilation is pure; nothing here touches the scheduler.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import List, Optional, Union
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger
from tzlocal import get_localzone

from harvest_scheduler.scheduler.models import PeriodicConfig, PeriodicInterval

logger = logging.getLogger(__name__)

# Days 29-31 do not exist in every month
MAX_FIXED_DAY_OF_MONTH = 28

_WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class MisfirePolicy(Enum):
    """How a trigger handles fire times missed while the scheduler was down."""

    FIRE_AND_PROCEED = "fire_and_proceed"  # Fire once promptly, then continue


def resolve_timezone(timezone: Union[str, tzinfo, None] = None) -> tzinfo:
    """Resolve a time zone name, defaulting to the system's local zone.

    Raises:
        zoneinfo.ZoneInfoNotFoundError: If the name is unknown
    """
    if timezone is None:
        return get_localzone()
    if isinstance(timezone, str):
        return ZoneInfo(timezone)
    return timezone


def localize(value: datetime, timezone: tzinfo) -> datetime:
    """Express a datetime in the given zone; naive values are taken as local to it."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone)
    return value.astimezone(timezone)


@dataclass(frozen=True)
class HarvestTrigger:
    """Recurring trigger compiled from a tenant's periodic configuration.

    Attributes:
        tenant_id: Tenant owning the schedule
        interval: Cadence the trigger was compiled from
        start_at: Effective start; no fire time precedes it
        hour: Hour of day to fire at
        minute: Minute of hour to fire at
        day: Day of month ("last" for the last day), or "*"
        day_of_week: Weekday abbreviation, or "*"
        timezone: Zone the cron fields are evaluated in
        misfire_policy: Handling of missed fire times
    """

    tenant_id: str
    interval: PeriodicInterval
    start_at: datetime
    hour: int
    minute: int
    day: str
    day_of_week: str
    timezone: tzinfo
    misfire_policy: MisfirePolicy = MisfirePolicy.FIRE_AND_PROCEED

    @property
    def expression(self) -> str:
        """Crontab-like rendering (minute hour day month weekday)."""
        return f"{self.minute} {self.hour} {self.day} * {self.day_of_week}"

    def to_cron_trigger(self) -> CronTrigger:
        """Build the APScheduler trigger for this schedule."""
        return CronTrigger(
            second=0,
            minute=self.minute,
            hour=self.hour,
            day=self.day,
            month="*",
            day_of_week=self.day_of_week,
            start_date=self.start_at,
            timezone=self.timezone,
        )

    def first_fire_time(self) -> Optional[datetime]:
        """First cron occurrence at or after the effective start."""
        return self.to_cron_trigger().get_next_fire_time(None, self.start_at)

    def next_fire_time(self, now: datetime) -> Optional[datetime]:
        """When the trigger fires next, applying the misfire policy.

        If the first occurrence already lies in the past (the scheduler was
        down, or the anchor is historical), the trigger fires once at ``now``
        and proceeds with the regular schedule afterwards.
        """
        first = self.first_fire_time()
        if first is None:
            return None
        now = localize(now, self.timezone)
        if first < now:
            return now
        return first

    def fire_times(self, count: int, now: Optional[datetime] = None) -> List[datetime]:
        """List the next ``count`` regular occurrences, ignoring misfires."""
        trigger = self.to_cron_trigger()
        since = localize(now, self.timezone) if now else self.start_at
        fire_time = trigger.get_next_fire_time(None, since)

        times: List[datetime] = []
        while fire_time is not None and len(times) < count:
            times.append(fire_time)
            fire_time = trigger.get_next_fire_time(fire_time, fire_time)
        return times


def effective_start(config: PeriodicConfig, timezone: tzinfo) -> datetime:
    """Compute where a (re)compiled trigger starts.

    A trigger that already fired resumes on the whole second after its last
    run instead of replaying the historical anchor.
    """
    start_at = localize(config.start_at, timezone)
    if config.last_triggered_at is not None:
        last = localize(config.last_triggered_at, timezone)
        if last >= start_at:
            return last.replace(microsecond=0) + timedelta(seconds=1)
    return start_at


def compile_trigger(
    tenant_id: str,
    config: PeriodicConfig,
    timezone: Union[str, tzinfo, None] = None,
) -> Optional[HarvestTrigger]:
    """Compile a periodic configuration into a recurring trigger.

    Args:
        tenant_id: Tenant owning the configuration
        config: The tenant's periodic configuration
        timezone: Zone to decompose ``start_at`` in (default: system local)

    Returns:
        The trigger, or None if the cadence is unset or unknown
    """
    tz = resolve_timezone(timezone)
    interval = PeriodicInterval.parse(config.periodic_interval)
    start = localize(config.start_at, tz)

    day = "*"
    day_of_week = "*"
    if interval is PeriodicInterval.DAILY:
        pass
    elif interval is PeriodicInterval.WEEKLY:
        day_of_week = _WEEKDAYS[start.weekday()]
    elif interval is PeriodicInterval.MONTHLY:
        if start.day > MAX_FIXED_DAY_OF_MONTH:
            day = "last"
        else:
            day = str(start.day)
    else:
        logger.debug(
            f"Tenant: {tenant_id}, no trigger for periodic interval "
            f"{config.periodic_interval!r}"
        )
        return None

    return HarvestTrigger(
        tenant_id=tenant_id,
        interval=interval,
        start_at=effective_start(config, tz),
        hour=start.hour,
        minute=start.minute,
        day=day,
        day_of_week=day_of_week,
        timezone=tz,
    )
