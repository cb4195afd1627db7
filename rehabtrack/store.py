# rehabtrack/store.py
"""
Entity store used by the adherence engine.

The engine never touches ``db.session`` directly; it is handed an object
with the methods of ``EntityStore``. ``SqlEntityStore`` is the production
implementation; tests pass an in-memory fake with the same methods.

Write methods only stage changes. They become durable when the surrounding
``transaction()`` block exits cleanly and are rolled back together otherwise.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

from sqlalchemy import func

from . import db
from .errors import NotFound
from .models.catalog import Category, Video
from .models.progress import UserProgress
from .models.schedule import Schedule
from .models.user import User

MAX_ID = 2 ** 63 - 1


class EntityStore(Protocol):
    def transaction(self) -> Any: ...

    def find_user(self, user_id: int) -> Any: ...
    def find_video(self, video_id: int) -> Any: ...
    def find_category(self, category_id: int) -> Any: ...
    def query_users(self, role: Optional[str] = None) -> List[Any]: ...
    def list_videos(self) -> List[Any]: ...
    def list_categories(self) -> List[Any]: ...

    def find_schedule(self, schedule_id: int) -> Any: ...
    def query_schedules(self, **filters: Any) -> List[Any]: ...
    def insert_schedule(self, **values: Any) -> Any: ...
    def update_schedule(self, schedule_id: int, values: Dict[str, Any], only_pending: bool = False) -> int: ...
    def delete_schedules(self, **filters: Any) -> int: ...

    def find_progress(self, progress_id: int) -> Any: ...
    def query_progress(self, **filters: Any) -> List[Any]: ...
    def count_progress(self, **filters: Any) -> int: ...
    def insert_progress(self, **values: Any) -> Any: ...
    def update_progress(self, progress_id: int, values: Dict[str, Any]) -> Any: ...

    def group_users_by_hospital(self) -> List[Tuple[Optional[str], int]]: ...


class SqlEntityStore:
    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # ------------------------------
    # Users & catalog (read-only)
    # ------------------------------
    def _get_or_404(self, model, ident, label):
        row = None
        if isinstance(ident, int) and 0 < ident <= MAX_ID:
            row = self.session.get(model, ident)
        if row is None:
            raise NotFound(f"{label} not found")
        return row

    def find_user(self, user_id):
        return self._get_or_404(User, user_id, "user")

    def find_video(self, video_id):
        return self._get_or_404(Video, video_id, "video")

    def find_category(self, category_id):
        return self._get_or_404(Category, category_id, "category")

    def query_users(self, role=None):
        q = self.session.query(User)
        if role is not None:
            q = q.filter(User.role == role)
        return q.order_by(User.id.asc()).all()

    def list_videos(self):
        return self.session.query(Video).order_by(Video.id.asc()).all()

    def list_categories(self):
        return self.session.query(Category).order_by(Category.id.asc()).all()

    # ------------------------------
    # Schedules
    # ------------------------------
    def find_schedule(self, schedule_id):
        return self._get_or_404(Schedule, schedule_id, "schedule")

    def _schedule_query(
        self,
        user_id: Optional[int] = None,
        video_id: Optional[int] = None,
        completed: Optional[bool] = None,
        scheduled_from: Optional[datetime] = None,
        scheduled_to: Optional[datetime] = None,
        scheduled_before: Optional[datetime] = None,
    ):
        q = self.session.query(Schedule)
        if user_id is not None:
            q = q.filter(Schedule.user_id == user_id)
        if video_id is not None:
            q = q.filter(Schedule.video_id == video_id)
        if completed is not None:
            q = q.filter(Schedule.completed.is_(bool(completed)))
        if scheduled_from is not None:
            q = q.filter(Schedule.scheduled_date >= scheduled_from)
        if scheduled_to is not None:
            q = q.filter(Schedule.scheduled_date <= scheduled_to)
        if scheduled_before is not None:
            q = q.filter(Schedule.scheduled_date < scheduled_before)
        return q

    def query_schedules(self, **filters):
        return (
            self._schedule_query(**filters)
            .order_by(Schedule.scheduled_date.asc(), Schedule.id.asc())
            .all()
        )

    def insert_schedule(self, **values):
        schedule = Schedule(**values)
        self.session.add(schedule)
        self.session.flush()
        return schedule

    def update_schedule(self, schedule_id, values, only_pending=False):
        q = self.session.query(Schedule).filter(Schedule.id == schedule_id)
        if only_pending:
            # compare-and-set: a concurrent completion matches zero rows
            q = q.filter(Schedule.completed.is_(False))
        return q.update(values, synchronize_session="fetch")

    def delete_schedules(self, schedule_id=None, **filters):
        q = self._schedule_query(**filters)
        if schedule_id is not None:
            q = q.filter(Schedule.id == schedule_id)
        return q.delete(synchronize_session="fetch")

    # ------------------------------
    # Progress history
    # ------------------------------
    def find_progress(self, progress_id):
        return self._get_or_404(UserProgress, progress_id, "progress entry")

    def _progress_query(
        self,
        user_id: Optional[int] = None,
        video_id: Optional[int] = None,
        completed_from: Optional[datetime] = None,
        completed_to: Optional[datetime] = None,
    ):
        q = self.session.query(UserProgress)
        if user_id is not None:
            q = q.filter(UserProgress.user_id == user_id)
        if video_id is not None:
            q = q.filter(UserProgress.video_id == video_id)
        if completed_from is not None:
            q = q.filter(UserProgress.completion_date >= completed_from)
        if completed_to is not None:
            q = q.filter(UserProgress.completion_date <= completed_to)
        return q

    def query_progress(self, offset=None, limit=None, **filters):
        q = self._progress_query(**filters).order_by(
            UserProgress.completion_date.desc(), UserProgress.id.desc()
        )
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def count_progress(self, **filters):
        return self._progress_query(**filters).count()

    def insert_progress(self, **values):
        progress = UserProgress(**values)
        self.session.add(progress)
        self.session.flush()
        return progress

    def update_progress(self, progress_id, values):
        progress = self.find_progress(progress_id)
        for key, value in values.items():
            setattr(progress, key, value)
        self.session.flush()
        return progress

    # ------------------------------
    # Cohorts
    # ------------------------------
    def group_users_by_hospital(self):
        rows = (
            self.session.query(User.hospital, func.count(User.id))
            .filter(User.role == "patient", User.hospital.isnot(None))
            .group_by(User.hospital)
            .all()
        )
        return [(hospital, int(count)) for hospital, count in rows]
