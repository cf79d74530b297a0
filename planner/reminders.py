"""Answer "is a reminder due" for the occurrences of a task.

Delivery and polling belong to the caller; this module only decides which
(occurrence, offset) pairs are due and records the ones that were sent.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Tuple

from .models import Occurrence, Task, TaskStatus

logger = logging.getLogger(__name__)

SILENT_STATUSES = (TaskStatus.COMPLETED, TaskStatus.CANCELLED, TaskStatus.PAUSED)


def due_reminders(task: Task, now: datetime) -> List[Tuple[Occurrence, int]]:
    """
    Pending occurrences whose reminder window ``[scheduled - offset, scheduled)``
    contains ``now`` and whose offset has not been sent yet.
    """
    if task.status in SILENT_STATUSES or not task.reminder_minutes:
        return []

    due = []
    for occ in task.occurrence_history:
        if not occ.is_pending or occ.scheduled_time <= now:
            continue
        for offset in task.reminder_minutes:
            if offset in occ.reminders_sent:
                continue
            if occ.scheduled_time - timedelta(minutes=offset) <= now:
                logger.debug("Task %s: %d minute reminder due for %s", task.id, offset, occ.scheduled_time)
                due.append((occ, offset))
    return due


def mark_reminder_sent(occurrence: Occurrence, offset: int) -> None:
    # Reassign so the JSON column registers the change
    if offset not in occurrence.reminders_sent:
        occurrence.reminders_sent = [*occurrence.reminders_sent, offset]
