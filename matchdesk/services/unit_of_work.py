# matchdesk/services/unit_of_work.py
"""Transaction scope for engine operations.

    with unit_of_work() as uow:
        task = lock_task(uow.session, task_id)
        ...
        uow.outbox.add(notify_artist, artist_id, summary, "offered")

Commit on normal exit, rollback on any exception (which is re-raised).
Queued side effects run only after the commit succeeded; a failing one is
logged and never turns a committed transition into an error.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import select

from ..errors import NotFound
from ..extensions import db
from ..models.task import Task

log = logging.getLogger(__name__)


class Outbox:
    def __init__(self):
        self._pending = []

    def add(self, fn, *args, **kwargs):
        self._pending.append((fn, args, kwargs))

    def __len__(self):
        return len(self._pending)

    def dispatch(self) -> int:
        """Run queued callables in order. Returns how many failed."""
        failed = 0
        pending, self._pending = self._pending, []
        for fn, args, kwargs in pending:
            try:
                fn(*args, **kwargs)
            except Exception:
                failed += 1
                log.exception("post-commit %s failed", getattr(fn, "__name__", fn))
        return failed

    def discard(self):
        self._pending = []


class UnitOfWork:
    def __init__(self, session):
        self.session = session
        self.outbox = Outbox()


@contextmanager
def unit_of_work(session=None):
    session = session or db.session
    uow = UnitOfWork(session)
    try:
        yield uow
        session.commit()
    except Exception:
        session.rollback()
        uow.outbox.discard()
        raise
    uow.outbox.dispatch()


def lock_task(session, task_id: int) -> Task:
    """SELECT ... FOR UPDATE on the task row; NotFound if it is missing."""
    task = session.execute(
        select(Task)
        .where(Task.id == task_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if task is None:
        raise NotFound("Task")
    return task
