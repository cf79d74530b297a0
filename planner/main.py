import json
import logging
from datetime import date, datetime

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .completion import CompletionResult
from .config import LOG_FORMAT, LOG_LEVEL
from .db import TaskStore, get_session, init_db
from .errors import PlannerError
from .models import StatusUpdate, TaskCreate
from .schedule import current_due_occurrence, next_pending_occurrence, period_progress
from .serialization import format_time, occurrence_to_dict, task_to_dict
from .services import (
    collect_due_reminders,
    complete_task,
    create_task,
    export_tasks,
    import_tasks,
    set_status,
    sweep_missed_all,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Recurring Planner")


def get_now() -> datetime:
    """Single clock reading per request."""
    return datetime.now().replace(microsecond=0)


@app.on_event("startup")
def on_startup() -> None:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    init_db()


@app.exception_handler(PlannerError)
def planner_error_handler(request: Request, exc: PlannerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _task_view(task, now: datetime) -> dict:
    data = task_to_dict(task)
    if task.is_recurring and task.recurring_weekdays:
        done, required = period_progress(task, now)
        data["periodProgress"] = {"completed": done, "required": required}
    return data


def _completion_view(result: CompletionResult) -> dict:
    data = {
        "outcome": result.outcome.value,
        "completionCount": result.completion_count,
        "count": result.count_display,
        "nextTime": format_time(result.next_time),
    }
    if result.occurrence is not None:
        data["occurrence"] = occurrence_to_dict(result.occurrence)
    if result.period_required:
        data["periodProgress"] = {
            "completed": result.period_completed,
            "required": result.period_required,
        }
    return data


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.post("/tasks", status_code=201)
def create_task_endpoint(
    payload: TaskCreate,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    task = create_task(session, payload, now)
    return _task_view(task, now)


@app.get("/tasks")
def list_tasks(
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    return [_task_view(task, now) for task in TaskStore(session).load()]


@app.get("/tasks/{task_id}")
def get_task(
    task_id: int,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    return _task_view(TaskStore(session).get(task_id), now)


@app.post("/tasks/{task_id}/complete")
def complete_task_endpoint(
    task_id: int,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    result = complete_task(session, task_id, now)
    data = _completion_view(result)
    data["task"] = _task_view(TaskStore(session).get(task_id), now)
    return data


@app.patch("/tasks/{task_id}/status")
def update_status(
    task_id: int,
    payload: StatusUpdate,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    task = set_status(session, task_id, payload.status)
    return _task_view(task, now)


@app.get("/tasks/{task_id}/occurrences/current")
def get_current_occurrence(
    task_id: int,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    occ = current_due_occurrence(TaskStore(session).get(task_id), now)
    if occ is None:
        raise HTTPException(status_code=404, detail="No occurrence is due")
    return occurrence_to_dict(occ)


@app.get("/tasks/{task_id}/occurrences/next")
def get_next_occurrence(
    task_id: int,
    session: Session = Depends(get_session),
):
    occ = next_pending_occurrence(TaskStore(session).get(task_id))
    if occ is None:
        raise HTTPException(status_code=404, detail="No pending occurrence")
    return occurrence_to_dict(occ)


@app.post("/sweep-missed")
def sweep_missed_endpoint(
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    counts = sweep_missed_all(session, now)
    return {"missed": {str(task_id): count for task_id, count in counts.items()}}


@app.get("/reminders/due")
def get_due_reminders(
    mark_sent: bool = Query(default=False),
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    due = collect_due_reminders(session, now, mark_sent=mark_sent)
    return [
        {
            "taskId": task.id,
            "taskName": task.name,
            "scheduledTime": format_time(occ.scheduled_time),
            "minutesBefore": offset,
        }
        for task, occ, offset in due
    ]


# ─────────────────────────── EXPORT / IMPORT ─────────────────────────────────

@app.get("/export/json")
def export_json(session: Session = Depends(get_session)):
    """Export all tasks in the on-disk JSON format."""
    filename = f"planner_export_{date.today().isoformat()}.json"
    return JSONResponse(
        content=export_tasks(session),
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.post("/import/json")
async def import_json(
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
):
    """Import tasks from a JSON file. Replaces all existing tasks."""
    if not file.filename.endswith(".json"):
        raise HTTPException(status_code=400, detail="Please upload a .json file")

    contents = await file.read()
    try:
        items = json.loads(contents)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON file")
    if not isinstance(items, list):
        raise HTTPException(status_code=400, detail="Expected a list of tasks")

    count = import_tasks(session, items)
    return {"imported": count}
