"""OID Sync — Config-Driven Trigger.

An APScheduler trigger that re-reads the job's SchedulerConfig every time the
scheduler asks for the next fire time. It always answers with a concrete
instant: a disabled job is parked a year out and a broken cron expression
degrades to a daily retry.
"""

from datetime import datetime, timedelta
from typing import Optional

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger

from oidsync.scheduler.config_service import SchedulerConfigService
from oidsync.core.logging import get_logger

logger = get_logger("scheduler.trigger")

DISABLED_PARK_INTERVAL = timedelta(days=365)
INVALID_CRON_FALLBACK = timedelta(hours=24)

# Cron numbering: 0 and 7 are Sunday
_DOW_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _day_name(token: str) -> str:
    index = int(token)
    if not 0 <= index <= 7:
        raise ValueError(f"day-of-week out of range: {token}")
    return _DOW_NAMES[index]


def _translate_day_of_week(field: str) -> str:
    """Rewrite numeric cron weekdays as names, which APScheduler reads unambiguously."""
    if field == "*" or "/" in field:
        return field
    parts = []
    for part in field.split(","):
        start, sep, end = part.partition("-")
        if sep and start.isdigit() and end.isdigit():
            parts.extend(_day_name(str(n)) for n in range(int(start), int(end) + 1))
        elif part.isdigit():
            parts.append(_day_name(part))
        else:
            parts.append(part.lower())
    return ",".join(dict.fromkeys(parts))


def parse_cron_expression(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Build a CronTrigger from a Spring-style six-field or classic five-field expression.

    Six fields: ``sec min hour day month weekday``. ``?`` means "any".
    Raises ValueError for anything else.
    """
    fields = (expression or "").split()
    if len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
    elif len(fields) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = fields
    else:
        raise ValueError(
            f"Wrong number of fields in cron expression '{expression}': "
            f"got {len(fields)}, expected 5 or 6"
        )

    day = "*" if day == "?" else day
    day_of_week = "*" if day_of_week == "?" else day_of_week

    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=_translate_day_of_week(day_of_week),
        timezone=timezone,
    )


class ConfigDrivenTrigger(BaseTrigger):
    """Next fire time from the live scheduler configuration of ``job_name``."""

    def __init__(
        self,
        job_name: str,
        config_service: SchedulerConfigService,
        timezone: str = "UTC",
    ):
        self.job_name = job_name
        self.config_service = config_service
        self.timezone = timezone

    def get_next_fire_time(
        self, previous_fire_time: Optional[datetime], now: datetime
    ) -> datetime:
        extra = {"job_name": self.job_name}
        try:
            config = self.config_service.get_scheduler_config(self.job_name)
        except Exception as e:
            logger.error(f"Scheduler config lookup failed: {e}", extra=extra)
            return now + INVALID_CRON_FALLBACK

        if not config.enabled:
            logger.debug("Job disabled, scheduling far in future", extra=extra)
            return now + DISABLED_PARK_INTERVAL

        try:
            cron = parse_cron_expression(config.cron_expression, self.timezone)
            next_fire = cron.get_next_fire_time(previous_fire_time, now)
        except Exception as e:
            logger.error(
                f"Invalid cron expression '{config.cron_expression}', "
                f"retrying in {INVALID_CRON_FALLBACK}: {e}",
                extra=extra,
            )
            return now + INVALID_CRON_FALLBACK

        if next_fire is None:
            return now + DISABLED_PARK_INTERVAL
        return next_fire

    def __str__(self) -> str:
        return f"config[{self.job_name}]"

    def __repr__(self) -> str:
        return f"<ConfigDrivenTrigger (job_name='{self.job_name}')>"
