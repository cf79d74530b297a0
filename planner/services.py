"""
Task lifecycle operations on top of the recurrence engine.

Each function works inside one session: it loads the task, applies the
engine operation in memory and commits through :class:`TaskStore`.
Callers that run a background sweep alongside user completions must
serialize access to the task collection themselves.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Tuple

from sqlmodel import Session

from .completion import CompletionOutcome, CompletionResult, complete, sweep_missed
from .config import DEFAULT_INTERVAL, DEFAULT_REMINDER_MINUTES, MAX_NAME_LENGTH
from .db import TaskStore
from .errors import InvalidConfiguration
from .models import Occurrence, RecurringType, Task, TaskCreate, TaskStatus
from .reminders import due_reminders, mark_reminder_sent
from .schedule import initialize
from .serialization import tasks_from_list, tasks_to_list

logger = logging.getLogger(__name__)

RECURRING_STATUSES = (TaskStatus.ACTIVE, TaskStatus.PAUSED, TaskStatus.CANCELLED)
SINGLE_STATUSES = (TaskStatus.PENDING, TaskStatus.COMPLETED)


def validate_task(payload: TaskCreate) -> None:
    name = payload.name.strip()
    if not name:
        raise InvalidConfiguration("Task name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidConfiguration(f"Task name is too long ({len(name)} > {MAX_NAME_LENGTH})")
    if any(minutes < 0 for minutes in payload.reminder_minutes or []):
        raise InvalidConfiguration("Reminder offsets must be >= 0 minutes")
    if payload.is_recurring:
        validate_recurrence(payload)


def validate_recurrence(payload: TaskCreate) -> None:
    valid_types = [t.value for t in RecurringType]
    if payload.recurring_type not in valid_types:
        raise InvalidConfiguration(
            f"Recurring type must be one of: {', '.join(valid_types)}, got {payload.recurring_type!r}"
        )
    if payload.recurring_interval < 0:
        raise InvalidConfiguration(f"Recurring interval must be >= 1, got {payload.recurring_interval}")
    if payload.recurring_weekdays:
        if payload.recurring_type != RecurringType.WEEKLY:
            raise InvalidConfiguration("Weekdays can only be set on weekly tasks")
        for day in payload.recurring_weekdays:
            if not 0 <= day <= 6:
                raise InvalidConfiguration(f"Weekday {day} is outside 0 (Sunday) .. 6 (Saturday)")
    if payload.recurring_max_count < 0:
        raise InvalidConfiguration(f"Max count must be >= 0, got {payload.recurring_max_count}")


def create_task(session: Session, payload: TaskCreate, now: datetime) -> Task:
    validate_task(payload)
    end_time = _local(payload.end_time)

    task = Task(
        name=payload.name.strip(),
        description=payload.description,
        user=payload.user.strip(),
        created_at=_local(now),
        end_time=end_time,
        due_date=end_time.date().isoformat(),
        event_duration=timedelta(minutes=payload.event_duration_minutes),
        is_recurring=payload.is_recurring,
        reminder_minutes=list(
            DEFAULT_REMINDER_MINUTES if payload.reminder_minutes is None else payload.reminder_minutes
        ),
    )

    if payload.is_recurring:
        task.recurring_type = payload.recurring_type
        task.recurring_interval = payload.recurring_interval or DEFAULT_INTERVAL
        task.recurring_weekdays = sorted(set(payload.recurring_weekdays))
        task.recurring_max_count = payload.recurring_max_count
        task.completion_count = 0
        task.status = TaskStatus.ACTIVE
        task.occurrence_history = initialize(task, _local(now))
    else:
        task.status = TaskStatus.PENDING

    store = TaskStore(session)
    store.save([task])
    session.refresh(task)
    logger.info("Created task %s (%s)", task.id, task.name)
    return task


def complete_task(session: Session, task_id: int, now: datetime) -> CompletionResult:
    store = TaskStore(session)
    task = store.get(task_id)

    if not task.is_recurring:
        task.status = TaskStatus.COMPLETED
        store.save([task])
        logger.info("Task %s marked as completed", task.id)
        return CompletionResult(
            outcome=CompletionOutcome.TASK_FINISHED,
            occurrence=None,
            completion_count=1,
        )

    return complete(task, now, save=lambda: store.save([task]))


def sweep_missed_all(session: Session, now: datetime) -> Dict[int, int]:
    """Run the missed sweep over every active recurring task."""
    store = TaskStore(session)
    counts = {}
    for task in store.load():
        if not task.is_recurring or task.status != TaskStatus.ACTIVE:
            continue
        missed = sweep_missed(task, now)
        if missed:
            counts[task.id] = missed
    store.save()
    return counts


def set_status(session: Session, task_id: int, status: TaskStatus) -> Task:
    store = TaskStore(session)
    task = store.get(task_id)

    allowed = RECURRING_STATUSES if task.is_recurring else SINGLE_STATUSES
    if status not in allowed:
        raise InvalidConfiguration(f"Status {status.value!r} does not apply to this task")
    if task.is_recurring and task.status == TaskStatus.COMPLETED:
        raise InvalidConfiguration(f"Task {task.id} has already finished all its repetitions")

    task.status = status
    store.save([task])
    logger.info("Task %s status set to %s", task.id, status.value)
    return task


def collect_due_reminders(
    session: Session, now: datetime, mark_sent: bool = False
) -> List[Tuple[Task, Occurrence, int]]:
    store = TaskStore(session)
    due = []
    for task in store.load():
        for occ, offset in due_reminders(task, now):
            due.append((task, occ, offset))
            if mark_sent:
                mark_reminder_sent(occ, offset)
    if mark_sent and due:
        store.save()
    return due


def export_tasks(session: Session) -> List[Dict[str, Any]]:
    return tasks_to_list(TaskStore(session).load())


def import_tasks(session: Session, items: List[Dict[str, Any]]) -> int:
    """Replace every stored task with the ones in ``items``."""
    try:
        tasks = tasks_from_list(items)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"Invalid task data: {exc}") from exc
    for task in tasks:
        if task.is_recurring and task.end_time is None:
            raise InvalidConfiguration(f"Recurring task {task.id} has no endTime")
        _to_local_times(task)

    TaskStore(session).replace_all(tasks)
    logger.info("Imported %d task(s)", len(tasks))
    return len(tasks)


def _local(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _to_local_times(task: Task) -> None:
    # Stored timestamps are naive local wall-clock values
    task.created_at = _local(task.created_at)
    task.end_time = _local(task.end_time)
    for occ in task.occurrence_history:
        occ.scheduled_time = _local(occ.scheduled_time)
        occ.completed_at = _local(occ.completed_at)
