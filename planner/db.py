from typing import Iterator, List, Optional

from sqlalchemy import text
from sqlmodel import SQLModel, Session, create_engine, select

from .config import DATABASE_URL, DB_PATH
from .errors import TaskNotFound
from .models import Task

if DATABASE_URL == f"sqlite:///{DB_PATH}":
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)


def init_db() -> None:
    from .models import Occurrence, Task  # noqa: F401

    SQLModel.metadata.create_all(engine)
    apply_schema_patches()


def get_session() -> Iterator[Session]:
    session = Session(engine)
    try:
        yield session
    finally:
        session.close()


def apply_schema_patches() -> None:
    """Apply simple additive schema changes when running without migrations."""

    def column_exists(table: str, column: str) -> bool:
        with engine.connect() as conn:
            rows = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
        return any(row[1] == column for row in rows)

    def ensure_column(table: str, column: str, ddl: str) -> None:
        if column_exists(table, column):
            return
        with engine.begin() as conn:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))

    if not DATABASE_URL.startswith("sqlite"):
        return
    ensure_column("task", "reminder_minutes", "JSON")
    ensure_column("task", "legacy_period_completions", "JSON")
    ensure_column("occurrence", "reminders_sent", "JSON")


class TaskStore:
    """Loads and saves task records through a session.

    The recurrence engine never touches storage itself; callers load tasks
    here, mutate them in memory and hand them back to ``save``. Storage
    errors propagate to the caller unchanged.
    """

    def __init__(self, session: Session):
        self.session = session

    def load(self) -> List[Task]:
        return list(self.session.exec(select(Task).order_by(Task.id)).all())

    def get(self, task_id: int) -> Task:
        task = self.session.get(Task, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def save(self, tasks: Optional[List[Task]] = None) -> None:
        if tasks:
            self.session.add_all(tasks)
        self.session.commit()

    def replace_all(self, tasks: List[Task]) -> None:
        for existing in self.load():
            self.session.delete(existing)
        self.session.flush()
        self.save(tasks)
