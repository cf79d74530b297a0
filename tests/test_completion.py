from datetime import datetime, timedelta

import pytest

from planner.completion import CompletionOutcome, complete, sweep_missed
from planner.errors import InvalidConfiguration, NoPendingOccurrence, UnsupportedLegacyFormat
from planner.models import Occurrence, OccurrenceStatus, Task, TaskStatus
from planner.schedule import initialize

MON = datetime(2025, 1, 6, 9, 0)
WED = datetime(2025, 1, 8, 9, 0)
FRI = datetime(2025, 1, 10, 9, 0)


def make_task(now: datetime, **kwargs) -> Task:
    fields = dict(
        id=7,
        name="Practice",
        is_recurring=True,
        recurring_type="daily",
        recurring_interval=1,
        status=TaskStatus.ACTIVE,
        end_time=datetime(2025, 1, 1, 9, 0),
    )
    fields.update(kwargs)
    task = Task(**fields)
    task.occurrence_history = initialize(task, now)
    return task


def pending(task: Task):
    return [o for o in task.occurrence_history if o.status == OccurrenceStatus.PENDING]


def test_daily_task_with_max_count_scenario():
    task = make_task(datetime(2024, 12, 31, 20, 0), recurring_max_count=3)

    result = complete(task, datetime(2025, 1, 1, 10, 0))
    assert result.outcome == CompletionOutcome.PERIOD_ADVANCED
    assert task.end_time == datetime(2025, 1, 2, 9, 0)
    assert task.due_date == "2025-01-02"
    assert task.completion_count == 1
    assert task.status == TaskStatus.ACTIVE
    assert result.count_display == "1/3"

    complete(task, datetime(2025, 1, 2, 10, 0))
    result = complete(task, datetime(2025, 1, 3, 10, 0))

    assert result.outcome == CompletionOutcome.TASK_FINISHED
    assert task.completion_count == 3
    assert task.status == TaskStatus.COMPLETED
    assert len(task.occurrence_history) == 3
    assert pending(task) == []


@pytest.mark.parametrize("recurring_type", ["daily", "weekly", "monthly", "yearly"])
def test_max_count_finishes_every_single_occurrence_rule(recurring_type):
    task = make_task(
        datetime(2024, 12, 31, 20, 0),
        recurring_type=recurring_type,
        recurring_interval=2,
        recurring_max_count=4,
    )
    outcomes = [complete(task, task.end_time).outcome for _ in range(4)]

    assert outcomes[-1] == CompletionOutcome.TASK_FINISHED
    assert all(o == CompletionOutcome.PERIOD_ADVANCED for o in outcomes[:-1])
    assert task.completion_count == 4
    assert task.status == TaskStatus.COMPLETED
    assert len(task.occurrence_history) == 4
    assert pending(task) == []

    with pytest.raises(NoPendingOccurrence):
        complete(task, task.end_time)


def test_weekday_week_resolves_as_one_period():
    task = make_task(
        datetime(2025, 1, 5, 8, 0),
        recurring_type="weekly",
        recurring_weekdays=[1, 3, 5],
        end_time=MON,
    )
    assert len(task.occurrence_history) == 3

    result = complete(task, datetime(2025, 1, 6, 10, 0))
    assert result.outcome == CompletionOutcome.SUB_OCCURRENCE_ADVANCED
    assert (result.period_completed, result.period_required) == (1, 3)
    assert task.end_time == WED
    assert task.completion_count == 0

    result = complete(task, datetime(2025, 1, 8, 10, 0))
    assert result.outcome == CompletionOutcome.SUB_OCCURRENCE_ADVANCED
    assert task.end_time == FRI

    result = complete(task, datetime(2025, 1, 10, 10, 0))
    assert result.outcome == CompletionOutcome.PERIOD_ADVANCED
    assert task.completion_count == 1

    first_week = task.occurrence_history[:3]
    next_week = pending(task)
    assert len(next_week) == 3
    for before, after in zip(first_week, next_week):
        assert after.scheduled_time - before.scheduled_time == timedelta(days=7)
    assert task.end_time == datetime(2025, 1, 13, 9, 0)
    assert task.due_date == "2025-01-13"


def test_weekday_task_finishes_on_last_period():
    task = make_task(
        datetime(2025, 1, 5, 8, 0),
        recurring_type="weekly",
        recurring_weekdays=[2, 4],
        recurring_max_count=1,
        end_time=datetime(2025, 1, 7, 18, 0),
    )
    complete(task, datetime(2025, 1, 7, 19, 0))
    result = complete(task, datetime(2025, 1, 9, 19, 0))

    assert result.outcome == CompletionOutcome.TASK_FINISHED
    assert task.status == TaskStatus.COMPLETED
    assert len(task.occurrence_history) == 2


def test_early_completion_takes_earliest_pending():
    task = make_task(
        datetime(2025, 1, 5, 8, 0),
        recurring_type="weekly",
        recurring_weekdays=[1, 3],
        end_time=MON,
    )
    now = datetime(2025, 1, 5, 12, 0)
    result = complete(task, now)

    assert result.occurrence.scheduled_time == MON
    assert result.occurrence.completed_at == now
    assert task.end_time == WED


def test_empty_history_has_nothing_to_complete():
    task = make_task(datetime(2025, 1, 1))
    task.occurrence_history = []
    with pytest.raises(NoPendingOccurrence):
        complete(task, datetime(2025, 1, 1, 10))


def test_legacy_completions_are_refused():
    task = make_task(datetime(2025, 1, 1), legacy_period_completions=["2025-01-06"])
    task.occurrence_history = []
    with pytest.raises(UnsupportedLegacyFormat):
        complete(task, datetime(2025, 1, 6, 10))


def test_non_recurring_task_is_not_handled_here():
    task = make_task(datetime(2025, 1, 1), is_recurring=False, status=TaskStatus.PENDING)
    with pytest.raises(InvalidConfiguration):
        complete(task, datetime(2025, 1, 1, 10))


def test_save_runs_once_and_errors_propagate():
    task = make_task(datetime(2025, 1, 1))
    calls = []
    complete(task, datetime(2025, 1, 1, 10), save=lambda: calls.append(1))
    assert calls == [1]

    def failing_save():
        raise RuntimeError("disk full")

    with pytest.raises(RuntimeError, match="disk full"):
        complete(task, datetime(2025, 1, 2, 10), save=failing_save)


def test_sweep_marks_elapsed_occurrences_and_is_idempotent():
    task = make_task(
        datetime(2025, 1, 5, 8, 0),
        recurring_type="weekly",
        recurring_weekdays=[1, 3, 5],
        end_time=MON,
        event_duration=timedelta(hours=1),
    )
    now = datetime(2025, 1, 8, 12, 0)

    assert sweep_missed(task, now) == 2
    assert sweep_missed(task, now) == 0
    statuses = [o.status for o in task.occurrence_history]
    assert statuses == [OccurrenceStatus.MISSED, OccurrenceStatus.MISSED, OccurrenceStatus.PENDING]
    assert task.completion_count == 0
    assert task.status == TaskStatus.ACTIVE
    assert len(task.occurrence_history) == 3


def test_sweep_waits_for_the_event_window():
    task = make_task(datetime(2025, 1, 1), event_duration=timedelta(hours=1))
    assert sweep_missed(task, datetime(2025, 1, 1, 10, 0)) == 0
    assert sweep_missed(task, datetime(2025, 1, 1, 10, 1)) == 1


def test_completion_after_sweep_moves_to_next_pending():
    task = make_task(
        datetime(2025, 1, 5, 8, 0),
        recurring_type="weekly",
        recurring_weekdays=[1, 3, 5],
        end_time=MON,
    )
    sweep_missed(task, datetime(2025, 1, 7, 12, 0))

    result = complete(task, datetime(2025, 1, 8, 10, 0))
    assert result.occurrence.scheduled_time == WED
    assert result.outcome == CompletionOutcome.SUB_OCCURRENCE_ADVANCED

    result = complete(task, datetime(2025, 1, 10, 10, 0))
    assert result.outcome == CompletionOutcome.PERIOD_ADVANCED
    assert task.completion_count == 1


def test_sweep_ignores_non_recurring_tasks():
    task = Task(id=3, name="Call", end_time=datetime(2025, 1, 1, 9), status=TaskStatus.PENDING)
    task.occurrence_history = [Occurrence(scheduled_time=datetime(2025, 1, 1, 9))]
    assert sweep_missed(task, datetime(2025, 2, 1)) == 0


def test_missing_end_time_is_rejected_before_any_change():
    task = make_task(datetime(2025, 1, 1))
    task.end_time = None
    with pytest.raises(InvalidConfiguration):
        complete(task, datetime(2025, 1, 1, 10))
    assert task.occurrence_history[0].status == OccurrenceStatus.PENDING
    assert task.completion_count == 0


def test_weekday_task_created_after_its_days_has_nothing_to_complete():
    # Created on Saturday for Monday/Wednesday of the same week
    task = make_task(
        datetime(2025, 1, 11, 10, 0),
        recurring_type="weekly",
        recurring_weekdays=[1, 3],
        end_time=WED,
    )
    assert task.occurrence_history == []
    with pytest.raises(NoPendingOccurrence):
        complete(task, datetime(2025, 1, 13, 10, 0))
