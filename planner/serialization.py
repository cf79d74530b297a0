"""
JSON representation of tasks using the field names of the existing data files.

Timestamps are ISO-8601 strings and ``eventDuration`` is an integer number of
nanoseconds. A zero timestamp (year 1) in old files means "unset".
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .models import Occurrence, OccurrenceStatus, Task, TaskStatus

NANOS_PER_MICRO = 1000


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.year == 1:
        return None
    return parsed


def duration_to_nanos(value: Optional[timedelta]) -> int:
    if not value:
        return 0
    return (value // timedelta(microseconds=1)) * NANOS_PER_MICRO


def nanos_to_duration(value: Optional[int]) -> timedelta:
    return timedelta(microseconds=int(value or 0) // NANOS_PER_MICRO)


def occurrence_to_dict(occ: Occurrence) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "scheduledTime": format_time(occ.scheduled_time),
        "status": _enum_value(occ.status),
    }
    if occ.completed_at is not None:
        data["completedAt"] = format_time(occ.completed_at)
    if occ.notes:
        data["notes"] = occ.notes
    if occ.reminders_sent:
        data["remindersSent"] = list(occ.reminders_sent)
    return data


def occurrence_from_dict(data: Dict[str, Any]) -> Occurrence:
    status = OccurrenceStatus(data.get("status") or OccurrenceStatus.PENDING.value)
    completed_at = parse_time(data.get("completedAt"))
    return Occurrence(
        scheduled_time=parse_time(data["scheduledTime"]),
        status=status,
        completed_at=completed_at if status == OccurrenceStatus.COMPLETED else None,
        notes=data.get("notes") or None,
        reminders_sent=list(data.get("remindersSent") or []),
    )


def task_to_dict(task: Task) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "taskId": task.id,
        "createTime": format_time(task.created_at),
        "endTime": format_time(task.end_time),
        "user": task.user,
        "taskName": task.name,
        "taskDesc": task.description,
        "status": _enum_value(task.status),
        "dueDate": task.due_date or "",
        "eventDuration": duration_to_nanos(task.event_duration),
        "isRecurring": task.is_recurring,
    }
    if task.is_recurring:
        data.update({
            "recurringType": task.recurring_type,
            "recurringInterval": task.recurring_interval,
            "recurringWeekdays": list(task.recurring_weekdays),
            "recurringMaxCount": task.recurring_max_count,
            "completionCount": task.completion_count,
            "occurrenceHistory": [occurrence_to_dict(occ) for occ in task.occurrence_history],
        })
    if task.reminder_minutes:
        data["reminderMinutes"] = list(task.reminder_minutes)
    if task.legacy_period_completions:
        data["currentPeriodCompletions"] = list(task.legacy_period_completions)
    return data


def task_from_dict(data: Dict[str, Any]) -> Task:
    is_recurring = bool(data.get("isRecurring"))
    default_status = TaskStatus.ACTIVE if is_recurring else TaskStatus.PENDING
    task = Task(
        id=data.get("taskId") or None,
        name=data.get("taskName") or "",
        description=data.get("taskDesc") or "",
        user=data.get("user") or "",
        created_at=parse_time(data.get("createTime")) or datetime.now(),
        end_time=parse_time(data.get("endTime")),
        due_date=data.get("dueDate") or None,
        status=TaskStatus(data.get("status") or default_status.value),
        event_duration=nanos_to_duration(data.get("eventDuration")),
        is_recurring=is_recurring,
        recurring_type=data.get("recurringType") or None,
        recurring_interval=int(data.get("recurringInterval") or 1),
        recurring_weekdays=list(data.get("recurringWeekdays") or []),
        recurring_max_count=int(data.get("recurringMaxCount") or 0),
        completion_count=int(data.get("completionCount") or 0),
        reminder_minutes=list(data.get("reminderMinutes") or []),
        legacy_period_completions=list(data.get("currentPeriodCompletions") or []),
    )
    task.occurrence_history = [
        occurrence_from_dict(item) for item in data.get("occurrenceHistory") or []
    ]
    return task


def tasks_to_list(tasks: List[Task]) -> List[Dict[str, Any]]:
    return [task_to_dict(task) for task in tasks]


def tasks_from_list(items: List[Dict[str, Any]]) -> List[Task]:
    return [task_from_dict(item) for item in items]
