"""
Completion state machine and missed-occurrence sweep for recurring tasks.

Completing a task marks one pending occurrence as done. When that resolves the
current period the completion count advances and either the next period is
generated or, once the maximum repetition count is reached, the task
finishes. Weekly tasks restricted to weekdays resolve a period only when the
whole week is done; every other rule resolves a period per occurrence.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .errors import InvalidConfiguration, NoPendingOccurrence, UnsupportedLegacyFormat
from .models import Occurrence, Task, TaskStatus
from .schedule import (
    current_due_occurrence,
    is_period_complete,
    next_pending_occurrence,
    next_period_occurrences,
    period_progress,
    uses_weekday_periods,
)

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M"


class CompletionOutcome(str, Enum):
    PERIOD_ADVANCED = "periodAdvanced"
    TASK_FINISHED = "taskFinished"
    SUB_OCCURRENCE_ADVANCED = "subOccurrenceAdvanced"


@dataclass
class CompletionResult:
    outcome: CompletionOutcome
    occurrence: Optional[Occurrence]
    completion_count: int
    max_count: int = 0
    next_time: Optional[datetime] = None
    # Weekday-period progress, only filled for sub-occurrence completions
    period_completed: int = 0
    period_required: int = 0

    @property
    def count_display(self) -> str:
        if self.max_count > 0:
            return f"{self.completion_count}/{self.max_count}"
        return str(self.completion_count)


def max_count_reached(task: Task) -> bool:
    return task.recurring_max_count > 0 and task.completion_count >= task.recurring_max_count


def point_at(task: Task, when: datetime) -> None:
    """Keep endTime / dueDate on the next actionable occurrence."""
    task.end_time = when
    task.due_date = when.date().isoformat()


def complete(
    task: Task,
    now: datetime,
    save: Optional[Callable[[], None]] = None,
) -> CompletionResult:
    """
    Complete the current occurrence of a recurring task.

    The first due pending occurrence is completed; if none is due yet the
    earliest pending one is completed early. ``save`` is called once after
    the task has been mutated and any error it raises propagates unchanged.
    """
    if not task.is_recurring:
        raise InvalidConfiguration(f"Task {task.id} is not recurring")

    if not task.occurrence_history:
        if task.legacy_period_completions:
            logger.warning("Refusing to complete task %s stored in the legacy format", task.id)
            raise UnsupportedLegacyFormat(task.id)
        raise NoPendingOccurrence(task.id)
    if task.end_time is None:
        raise InvalidConfiguration(f"Task {task.id} has no endTime to schedule from")

    occurrence = current_due_occurrence(task, now) or next_pending_occurrence(task)
    if occurrence is None:
        raise NoPendingOccurrence(task.id)

    occurrence.mark_completed(now)
    logger.info(
        "Task %s: marked occurrence at %s as completed",
        task.id,
        occurrence.scheduled_time.strftime(TIME_FORMAT),
    )

    if uses_weekday_periods(task) and not is_period_complete(task, now):
        upcoming = next_pending_occurrence(task)
        # With nothing left pending anywhere the period is over regardless of the week window
        if upcoming is not None:
            result = _advance_within_period(task, occurrence, upcoming, now)
            _persist(save)
            return result

    result = _advance_period(task, occurrence, now)
    _persist(save)
    return result


def _persist(save: Optional[Callable[[], None]]) -> None:
    if save is not None:
        save()


def _advance_within_period(
    task: Task, occurrence: Occurrence, upcoming: Occurrence, now: datetime
) -> CompletionResult:
    point_at(task, upcoming.scheduled_time)
    done, required = period_progress(task, now)
    logger.info(
        "Task %s: sub-occurrence completed (%d/%d in this period), next %s",
        task.id,
        done,
        required,
        upcoming.scheduled_time.strftime(TIME_FORMAT),
    )
    return CompletionResult(
        outcome=CompletionOutcome.SUB_OCCURRENCE_ADVANCED,
        occurrence=occurrence,
        completion_count=task.completion_count,
        max_count=task.recurring_max_count,
        next_time=upcoming.scheduled_time,
        period_completed=done,
        period_required=required,
    )


def _advance_period(task: Task, occurrence: Occurrence, now: datetime) -> CompletionResult:
    task.completion_count += 1

    if max_count_reached(task):
        task.status = TaskStatus.COMPLETED
        logger.info(
            "Task %s: final period completed (%d/%d)",
            task.id,
            task.completion_count,
            task.recurring_max_count,
        )
        return CompletionResult(
            outcome=CompletionOutcome.TASK_FINISHED,
            occurrence=occurrence,
            completion_count=task.completion_count,
            max_count=task.recurring_max_count,
        )

    upcoming = next_period_occurrences(task, now)
    task.occurrence_history.extend(upcoming)
    if upcoming:
        point_at(task, upcoming[0].scheduled_time)

    result = CompletionResult(
        outcome=CompletionOutcome.PERIOD_ADVANCED,
        occurrence=occurrence,
        completion_count=task.completion_count,
        max_count=task.recurring_max_count,
        next_time=task.end_time,
    )
    logger.info(
        "Task %s: period completed (count %s), next occurrence %s",
        task.id,
        result.count_display,
        task.end_time.strftime(TIME_FORMAT),
    )
    return result


def sweep_missed(task: Task, now: datetime) -> int:
    """
    Mark pending occurrences whose event window has fully elapsed as missed.

    Returns how many occurrences changed. Counters, task status and the
    occurrence list are left alone, so running it again is a no-op.
    """
    if not task.is_recurring:
        return 0

    duration = task.event_duration or timedelta(0)
    missed = 0
    for occ in task.occurrence_history:
        if occ.is_pending and occ.scheduled_time + duration < now:
            occ.mark_missed()
            missed += 1

    if missed:
        logger.info("Task %s: marked %d occurrence(s) as missed", task.id, missed)
    return missed
