from __future__ import annotations

import copy
import itertools
from contextlib import contextmanager
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from rehabtrack.errors import NotFound

NOW = datetime(2025, 6, 15, 12, 0, 0)


class FakeEntityStore:
    """In-memory stand-in for SqlEntityStore with all-or-nothing transactions."""

    def __init__(self) -> None:
        self.users: Dict[int, Any] = {}
        self.categories: Dict[int, Any] = {}
        self.videos: Dict[int, Any] = {}
        self.schedules: Dict[int, Any] = {}
        self.progress: Dict[int, Any] = {}
        self._ids = itertools.count(1)
        self.fail_progress_insert = False
        self.commits = 0

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy((self.schedules, self.progress))
        try:
            yield
        except Exception:
            self.schedules, self.progress = snapshot
            raise
        self.commits += 1

    # seeding -------------------------------------------------------------
    def add_user(self, role: str = "patient", name: Optional[str] = None, hospital: Optional[str] = None):
        uid = next(self._ids)
        user = SimpleNamespace(
            id=uid,
            name=name or f"user{uid}",
            email=f"user{uid}@example.com",
            role=role,
            hospital=hospital,
        )
        self.users[uid] = user
        return user

    def add_category(self, name: str = "Knee"):
        cid = next(self._ids)
        category = SimpleNamespace(id=cid, name=name)
        self.categories[cid] = category
        return category

    def add_video(self, category=None, title: Optional[str] = None):
        category = category or self.add_category()
        vid = next(self._ids)
        video = SimpleNamespace(
            id=vid,
            title=title or f"video{vid}",
            category_id=category.id,
            category=category,
        )
        self.videos[vid] = video
        return video

    def add_schedule(self, user, video, scheduled_date: datetime, completed: bool = False):
        return self.insert_schedule(
            user_id=user.id,
            video_id=video.id,
            scheduled_date=scheduled_date,
            completed=completed,
            completed_at=scheduled_date if completed else None,
        )

    def add_progress(self, user, video, completion_date: datetime, rating=None, notes=None):
        return self.insert_progress(
            user_id=user.id,
            video_id=video.id,
            completion_date=completion_date,
            rating=rating,
            notes=notes,
        )

    # reads ---------------------------------------------------------------
    def _find(self, table, ident, label):
        try:
            return table[ident]
        except KeyError:
            raise NotFound(f"{label} not found")

    def find_user(self, user_id):
        return self._find(self.users, user_id, "user")

    def find_video(self, video_id):
        return self._find(self.videos, video_id, "video")

    def find_category(self, category_id):
        return self._find(self.categories, category_id, "category")

    def query_users(self, role=None):
        return [u for u in self.users.values() if role is None or u.role == role]

    def list_videos(self):
        return list(self.videos.values())

    def list_categories(self):
        return list(self.categories.values())

    # schedules -----------------------------------------------------------
    def find_schedule(self, schedule_id):
        return self._find(self.schedules, schedule_id, "schedule")

    @staticmethod
    def _schedule_matches(s, schedule_id=None, user_id=None, video_id=None, completed=None,
                          scheduled_from=None, scheduled_to=None, scheduled_before=None):
        return (
            (schedule_id is None or s.id == schedule_id)
            and (user_id is None or s.user_id == user_id)
            and (video_id is None or s.video_id == video_id)
            and (completed is None or s.completed == completed)
            and (scheduled_from is None or s.scheduled_date >= scheduled_from)
            and (scheduled_to is None or s.scheduled_date <= scheduled_to)
            and (scheduled_before is None or s.scheduled_date < scheduled_before)
        )

    def query_schedules(self, **filters) -> List[Any]:
        rows = [s for s in self.schedules.values() if self._schedule_matches(s, **filters)]
        return sorted(rows, key=lambda s: (s.scheduled_date, s.id))

    def insert_schedule(self, **values):
        sid = next(self._ids)
        schedule = SimpleNamespace(id=sid, **values)
        self.schedules[sid] = schedule
        return schedule

    def update_schedule(self, schedule_id, values, only_pending=False):
        schedule = self.schedules.get(schedule_id)
        if schedule is None or (only_pending and schedule.completed):
            return 0
        for key, value in values.items():
            setattr(schedule, key, value)
        return 1

    def delete_schedules(self, **filters):
        doomed = [sid for sid, s in self.schedules.items() if self._schedule_matches(s, **filters)]
        for sid in doomed:
            del self.schedules[sid]
        return len(doomed)

    # progress ------------------------------------------------------------
    def find_progress(self, progress_id):
        return self._find(self.progress, progress_id, "progress entry")

    @staticmethod
    def _progress_matches(p, user_id=None, video_id=None, completed_from=None, completed_to=None):
        return (
            (user_id is None or p.user_id == user_id)
            and (video_id is None or p.video_id == video_id)
            and (completed_from is None or p.completion_date >= completed_from)
            and (completed_to is None or p.completion_date <= completed_to)
        )

    def query_progress(self, offset=None, limit=None, **filters):
        rows = [p for p in self.progress.values() if self._progress_matches(p, **filters)]
        rows.sort(key=lambda p: (p.completion_date, p.id), reverse=True)
        start = offset or 0
        end = None if limit is None else start + limit
        return rows[start:end]

    def count_progress(self, **filters):
        return sum(1 for p in self.progress.values() if self._progress_matches(p, **filters))

    def insert_progress(self, **values):
        if self.fail_progress_insert:
            raise RuntimeError("disk full")
        pid = next(self._ids)
        progress = SimpleNamespace(id=pid, **values)
        self.progress[pid] = progress
        return progress

    def update_progress(self, progress_id, values):
        progress = self.find_progress(progress_id)
        for key, value in values.items():
            setattr(progress, key, value)
        return progress

    def group_users_by_hospital(self):
        counts: Dict[Any, int] = {}
        for u in self.users.values():
            if u.role == "patient":
                counts[u.hospital] = counts.get(u.hospital, 0) + 1
        return list(counts.items())


@pytest.fixture()
def store() -> FakeEntityStore:
    return FakeEntityStore()


@pytest.fixture()
def clock():
    return lambda: NOW


# ---------------------------------------------------------------------------
# Flask app against in-memory SQLite
# ---------------------------------------------------------------------------

@pytest.fixture()
def app():
    from config import TestingConfig
    from rehabtrack import create_app, db

    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def seeded(app):
    """Two patients, an expert, an admin and two videos in one category."""
    from flask_jwt_extended import create_access_token

    from rehabtrack import db
    from rehabtrack.models.catalog import Category, Video
    from rehabtrack.models.user import User

    with app.app_context():
        users = {
            "alice": User(email="alice@example.com", name="Alice", role="patient", hospital="Central Hospital"),
            "bob": User(email="bob@example.com", name="Bob", role="patient", hospital="City Medical Center"),
            "erin": User(email="erin@example.com", name="Erin", role="expert"),
            "adam": User(email="adam@example.com", name="Adam", role="admin"),
        }
        db.session.add_all(users.values())
        category = Category(name="Knee")
        db.session.add(category)
        db.session.flush()
        videos = [
            Video(title="Quad sets", duration_seconds=300, category_id=category.id),
            Video(title="Heel slides", duration_seconds=240, category_id=category.id),
        ]
        db.session.add_all(videos)
        db.session.commit()

        data = SimpleNamespace(
            ids={name: u.id for name, u in users.items()},
            headers={
                name: {"Authorization": f"Bearer {create_access_token(identity=str(u.id))}"}
                for name, u in users.items()
            },
            video_ids=[v.id for v in videos],
            category_id=category.id,
        )
    return data
