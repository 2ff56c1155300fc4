"""Cron expression helpers built on APScheduler's crontab parser."""

from __future__ import annotations

from datetime import datetime

from apscheduler.triggers.cron import CronTrigger

from ..core.exceptions import InvalidCronExpressionError


def build_trigger(expression: str, timezone: str | None = "UTC") -> CronTrigger:
    """Parse a 5-field crontab expression.

    Raises:
        InvalidCronExpressionError: If the expression or timezone is invalid.
    """
    if not isinstance(expression, str) or len(expression.split()) != 5:
        raise InvalidCronExpressionError(str(expression), "expected 5 fields")
    timezone = timezone or "UTC"
    try:
        return CronTrigger.from_crontab(expression, timezone=timezone)
    except KeyError as e:
        # Unknown timezone names surface as KeyError subclasses
        raise InvalidCronExpressionError(expression, f"unknown timezone {timezone}") from e
    except (ValueError, TypeError) as e:
        raise InvalidCronExpressionError(expression, str(e)) from e


def validate_cron(expression: str, timezone: str | None = "UTC") -> None:
    build_trigger(expression, timezone)


def next_fire_times(expression: str, count: int = 5, timezone: str | None = "UTC") -> list[datetime]:
    """Upcoming fire times of a cron expression, earliest first."""
    trigger = build_trigger(expression, timezone)
    times: list[datetime] = []
    previous = None
    now = datetime.now(trigger.timezone)
    while len(times) < count:
        fire = trigger.get_next_fire_time(previous, now)
        if fire is None:
            break
        times.append(fire)
        previous = now = fire
    return times
