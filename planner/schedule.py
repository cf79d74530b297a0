"""
Calendar arithmetic for recurring tasks.

Weeks start on Sunday and weekdays are numbered 0=Sunday..6=Saturday, matching
the ``recurring_weekdays`` stored on a task. All functions take "now" as an
argument instead of reading the clock, so a single operation sees one
consistent instant.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from .errors import InvalidConfiguration
from .models import Occurrence, OccurrenceStatus, RecurringType, Task

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7


def sunday_weekday(moment: datetime) -> int:
    """Weekday of ``moment`` with 0=Sunday..6=Saturday."""
    return (moment.weekday() + 1) % DAYS_PER_WEEK


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def week_start(moment: datetime) -> datetime:
    """Return midnight of the Sunday that begins the week containing ``moment``."""
    return start_of_day(moment) - timedelta(days=sunday_weekday(moment))


def uses_weekday_periods(task: Task) -> bool:
    """Weekly tasks restricted to weekdays treat each calendar week as one period."""
    return task.recurring_type == RecurringType.WEEKLY and bool(task.recurring_weekdays)


def _check_weekdays(weekdays: Iterable[int]) -> None:
    for day in weekdays:
        if not 0 <= day <= 6:
            raise InvalidConfiguration(f"Weekday {day} is outside 0 (Sunday) .. 6 (Saturday)")


def _require_interval(interval: int) -> None:
    if interval < 1:
        raise InvalidConfiguration(f"Recurring interval must be >= 1, got {interval}")


def _at_time_of(day: datetime, reference: datetime) -> datetime:
    return day.replace(
        hour=reference.hour,
        minute=reference.minute,
        second=reference.second,
        microsecond=0,
        tzinfo=reference.tzinfo,
    )


def next_weekday(anchor: datetime, weekdays: Iterable[int]) -> datetime:
    """First day after ``anchor`` (same time of day) that falls on one of ``weekdays``."""
    wanted = set(weekdays)
    candidate = anchor + timedelta(days=1)
    for _ in range(DAYS_PER_WEEK):
        if sunday_weekday(candidate) in wanted:
            return candidate
        candidate += timedelta(days=1)
    return anchor + timedelta(days=DAYS_PER_WEEK)


def next_occurrence(
    anchor: datetime,
    recurring_type: str,
    interval: int = 1,
    weekdays: Iterable[int] = (),
) -> datetime:
    """
    Compute the occurrence that follows ``anchor``.

    Month and year steps use ``relativedelta``, which clamps to the last valid
    day of the target month: Jan 31 + 1 month is Feb 28 (Feb 29 in leap years),
    and Feb 29 + 1 year is Feb 28.
    """
    weekdays = list(weekdays)
    _check_weekdays(weekdays)

    if recurring_type == RecurringType.DAILY:
        _require_interval(interval)
        return anchor + timedelta(days=interval)
    if recurring_type == RecurringType.WEEKLY:
        if weekdays:
            return next_weekday(anchor, weekdays)
        _require_interval(interval)
        return anchor + timedelta(weeks=interval)
    if recurring_type == RecurringType.MONTHLY:
        _require_interval(interval)
        return anchor + relativedelta(months=interval)
    if recurring_type == RecurringType.YEARLY:
        _require_interval(interval)
        return anchor + relativedelta(years=interval)

    logger.warning("Unknown recurring type %r, defaulting to daily", recurring_type)
    return anchor + timedelta(days=1)


def week_occurrence_times(sunday: datetime, weekdays: Iterable[int], reference: datetime) -> List[datetime]:
    """One time per weekday in the week beginning ``sunday``, at ``reference``'s time of day."""
    weekdays = sorted(set(weekdays))
    _check_weekdays(weekdays)
    return [_at_time_of(sunday + timedelta(days=day), reference) for day in weekdays]


def initialize(task: Task, now: datetime) -> List[Occurrence]:
    """Build the first period of occurrences for a newly created recurring task."""
    if not task.is_recurring:
        return []
    if task.end_time is None:
        raise InvalidConfiguration("A recurring task needs an endTime for its first occurrence")

    if uses_weekday_periods(task):
        today = start_of_day(now)
        times = week_occurrence_times(week_start(task.end_time), task.recurring_weekdays, task.end_time)
        # Days of the current week that have already gone by are skipped
        return [Occurrence(scheduled_time=t) for t in times if t >= today]

    return [Occurrence(scheduled_time=task.end_time)]


def next_period_occurrences(task: Task, now: datetime) -> List[Occurrence]:
    """Occurrences of the period that follows the one just resolved."""
    if uses_weekday_periods(task):
        following_week = week_start(now) + timedelta(days=DAYS_PER_WEEK)
        times = week_occurrence_times(following_week, task.recurring_weekdays, task.end_time)
        return [Occurrence(scheduled_time=t) for t in times]

    upcoming = next_occurrence(
        task.end_time,
        task.recurring_type,
        task.recurring_interval,
        task.recurring_weekdays,
    )
    return [Occurrence(scheduled_time=upcoming)]


def _current_week(task: Task, now: datetime) -> List[Occurrence]:
    start = week_start(now)
    end = start + timedelta(days=DAYS_PER_WEEK)
    return [occ for occ in task.occurrence_history if start <= occ.scheduled_time < end]


def is_period_complete(task: Task, now: datetime) -> bool:
    """
    True when the week containing ``now`` has no pending occurrences left and
    at least one completed one. Only weekday-restricted weekly tasks have
    multi-occurrence periods; every other configuration returns False.
    """
    if not task.is_recurring or not uses_weekday_periods(task):
        return False

    week = _current_week(task, now)
    pending = sum(1 for occ in week if occ.status == OccurrenceStatus.PENDING)
    completed = sum(1 for occ in week if occ.status == OccurrenceStatus.COMPLETED)
    return pending == 0 and completed > 0


def period_progress(task: Task, now: datetime) -> Tuple[int, int]:
    """(completed occurrences in the current week, occurrences required per week)."""
    completed = sum(
        1 for occ in _current_week(task, now) if occ.status == OccurrenceStatus.COMPLETED
    )
    return completed, len(set(task.recurring_weekdays))


def current_due_occurrence(task: Task, now: datetime) -> Optional[Occurrence]:
    """First pending occurrence whose scheduled time has been reached."""
    if not task.is_recurring:
        return None
    for occ in task.occurrence_history:
        if occ.is_pending and occ.scheduled_time <= now:
            return occ
    return None


def next_pending_occurrence(task: Task) -> Optional[Occurrence]:
    if not task.is_recurring:
        return None
    for occ in task.occurrence_history:
        if occ.is_pending:
            return occ
    return None
