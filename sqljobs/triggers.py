# triggers.py
"""Turn human date text and cron expressions into run times.

Both parsers are third-party: dateparser for "in 10 minutes" / "next monday
9am" style text, APScheduler's CronTrigger for five-field crontab lines.
"""
from datetime import datetime, timedelta, timezone

import dateparser
from apscheduler.triggers.cron import CronTrigger

from sqljobs.errors import InvalidCronError, InvalidDateError


def parse_when(when, now):
    """Resolve ``when`` (text or datetime) to an aware UTC datetime."""
    if isinstance(when, datetime):
        if when.tzinfo is None:
            return when.replace(tzinfo=timezone.utc)
        return when.astimezone(timezone.utc)

    if not isinstance(when, str) or not when.strip():
        raise InvalidDateError(when, "empty date")

    parsed = dateparser.parse(
        when,
        settings={
            "PREFER_DATES_FROM": "future",
            "RELATIVE_BASE": now.astimezone(timezone.utc).replace(tzinfo=None),
            "TIMEZONE": "UTC",
            "TO_TIMEZONE": "UTC",
            "RETURN_AS_TIMEZONE_AWARE": True,
        },
    )
    if parsed is None:
        raise InvalidDateError(when)
    return parsed.astimezone(timezone.utc)


# Standard crontab numbers weekdays from Sunday (0 or 7); APScheduler 3.x
# numbers them from Monday, so numeric weekdays are rewritten as names.
WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

CRON_ALIASES = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}


def normalize_crontab(expression):
    """Expand ``@daily`` style aliases and rewrite numeric weekdays as names.

    normalize_crontab("0 9 * * 1-5") -> "0 9 * * mon,tue,wed,thu,fri"
    """
    expression = CRON_ALIASES.get(expression.strip().lower(), expression.strip())
    fields = expression.split()
    if len(fields) == 5:
        fields[4] = _weekday_field(fields[4])
    return " ".join(fields)


def _weekday_field(field):
    if field == "*" or any(c.isalpha() for c in field):
        return field
    days = set()
    for part in field.split(","):
        days.update(_expand_weekdays(part))
    return ",".join(WEEKDAY_NAMES[d] for d in sorted(days))


def _expand_weekdays(part):
    body, _, step = part.partition("/")
    try:
        step = int(step) if step else 1
        if body == "*":
            first, last = 0, 6
        elif "-" in body:
            first, last = (int(v) for v in body.split("-", 1))
        else:
            first = int(body)
            last = 7 if step > 1 else first
    except ValueError:
        raise ValueError(f"invalid day of week {part!r}") from None
    if step < 1 or not 0 <= first <= last <= 7:
        raise ValueError(f"invalid day of week {part!r}")
    return {day % 7 for day in range(first, last + 1, step)}


def cron_trigger(expression):
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidCronError(expression, "empty expression")
    try:
        return CronTrigger.from_crontab(normalize_crontab(expression), timezone="UTC")
    except ValueError as exc:
        raise InvalidCronError(expression, str(exc)) from exc


def next_cron_run(expression, after):
    """First trigger instant strictly after ``after``, at whole-second precision."""
    trigger = cron_trigger(expression)
    start = after.astimezone(timezone.utc).replace(microsecond=0) + timedelta(seconds=1)
    fire_time = trigger.get_next_fire_time(None, start)
    if fire_time is None:
        raise InvalidCronError(expression, "expression never fires")
    return fire_time.astimezone(timezone.utc)
