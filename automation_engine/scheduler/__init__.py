"""Cron and webhook triggers."""

from .cron import build_trigger, next_fire_times, validate_cron
from .service import INVALID_TOKEN, Scheduler

__all__ = ["INVALID_TOKEN", "Scheduler", "build_trigger", "next_fire_times", "validate_cron"]
