"""
Interval and cron matching for ``every<Interval>`` and cron-keyed handlers.

Interval names:
    everyMinute, everyHour, everyDay, everyWeek, everyMonth
    every5Minutes, every2Hours, every30Seconds, every3Days, ...

Cron expressions use the usual 5 fields (minute hour day-of-month month
day-of-week) and support ``*``, lists, ranges and steps.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

INTERVAL_PATTERN = re.compile(r"^every(\d*)([A-Z][a-z]+?)s?$")
INTERVAL_UNITS: dict[str, timedelta] = {
    "Second": timedelta(seconds=1),
    "Minute": timedelta(minutes=1),
    "Hour": timedelta(hours=1),
    "Day": timedelta(days=1),
    "Week": timedelta(weeks=1),
    "Month": timedelta(days=30),
}
CRON_LOOKBACK = timedelta(hours=24)


def parse_interval(name: str) -> timedelta | None:
    """``every5Minutes`` -> 5 minutes; None for names without a known unit."""
    match = INTERVAL_PATTERN.match(name)
    if match is None:
        return None
    count_str, unit = match.groups()
    base = INTERVAL_UNITS.get(unit)
    if base is None:
        return None
    count = int(count_str) if count_str else 1
    if count < 1:
        return None
    return base * count


def interval_due(name: str, last_run: datetime | None, now: datetime) -> bool:
    """True when at least one interval has elapsed since *last_run*."""
    interval = parse_interval(name)
    if interval is None:
        logger.warning("Unrecognised schedule interval: %s", name)
        return False
    if last_run is None:
        return True
    return now - last_run >= interval


def cron_match_field(field: str, value: int, min_val: int, max_val: int) -> bool:
    """Check if a single cron field matches a datetime component.

    Supports: ``*``, exact numbers, comma-separated lists, ranges (``1-5``),
    and step values (``*/5``, ``1-10/2``).
    """
    for part in field.split(","):
        if "/" in part:
            base, step_str = part.split("/", 1)
            step = int(step_str)
            if step <= 0:
                continue
            if base == "*":
                if (value - min_val) % step == 0:
                    return True
            elif "-" in base:
                lo, hi = base.split("-", 1)
                if int(lo) <= value <= int(hi) and (value - int(lo)) % step == 0:
                    return True
            elif int(base) <= value <= max_val and (value - int(base)) % step == 0:
                return True
        elif part == "*":
            return True
        elif "-" in part:
            lo, hi = part.split("-", 1)
            if int(lo) <= value <= int(hi):
                return True
        elif part and value == int(part):
            return True
    return False


def cron_matches(cron_expr: str, moment: datetime) -> bool:
    """True when *moment* (to the minute) satisfies *cron_expr*."""
    parts = cron_expr.strip().split()
    if len(parts) != 5:
        logger.warning("Invalid cron expression (need 5 fields): %s", cron_expr)
        return False
    c_min, c_hour, c_dom, c_mon, c_dow = parts
    try:
        return (
            cron_match_field(c_min, moment.minute, 0, 59)
            and cron_match_field(c_hour, moment.hour, 0, 23)
            and cron_match_field(c_dom, moment.day, 1, 31)
            and cron_match_field(c_mon, moment.month, 1, 12)
            and cron_match_field(c_dow, moment.isoweekday() % 7, 0, 6)
        )
    except ValueError:
        logger.warning("Invalid cron expression: %s", cron_expr)
        return False


def cron_due(cron_expr: str, last_run: datetime | None, now: datetime) -> bool:
    """Return True if *cron_expr* has a matching minute in ``(last_run, now]``.

    Walks forward minute-by-minute; the window is capped at 24 hours. Without
    a previous run only the current minute is checked.
    """
    end = now.replace(second=0, microsecond=0)
    if last_run is None:
        return cron_matches(cron_expr, end)

    check = last_run.replace(second=0, microsecond=0) + timedelta(minutes=1)
    check = max(check, end - CRON_LOOKBACK)
    while check <= end:
        if cron_matches(cron_expr, check):
            return True
        check += timedelta(minutes=1)
    return False
