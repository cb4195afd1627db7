# rehabtrack/analytics_core.py
"""
Read-side adherence analytics.

The module-level functions are pure: they take already-loaded records (any
objects with the usual attribute names) plus ``now`` and return plain dicts.
``AdherenceAnalytics`` only pulls records from the store and hands them over.
Day boundaries are UTC calendar days.
"""
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .errors import InvalidInput
from .permissions import EXPERT, PATIENT
from .timeutil import calendar_day, start_of_day, to_utc_naive

if TYPE_CHECKING:
    from .store import EntityStore

ENGAGEMENT_LIMIT = 20
DEFAULT_TOP_VIDEOS = 10
MAX_WINDOW_DAYS = 3650


# ------------------------------
# Helpers
# ------------------------------
def percentage(part: int, whole: int) -> int:
    """part / whole * 100 rounded half-up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (2 * whole)


def completion_days(progress: Iterable[Any]) -> Set[date]:
    return {calendar_day(p.completion_date) for p in progress}


def current_streak(days: Set[date], today: date) -> int:
    """
    Consecutive days with a completion, walking back from today.
    Today missing means 0.
    """
    streak = 0
    day = today
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def _require_positive(value: int, field: str, upper: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInput(f"{field} must be a positive integer")
    if upper is not None and value > upper:
        raise InvalidInput(f"{field} must be at most {upper}")
    return value


# ------------------------------
# Per-user
# ------------------------------
def summarize_progress(progress: Sequence[Any], now: datetime) -> Dict[str, int]:
    last_7 = now - timedelta(days=7)
    last_30 = now - timedelta(days=30)

    return {
        "total_completed": len(progress),
        "completed_last_7_days": sum(1 for p in progress if p.completion_date >= last_7),
        "completed_last_30_days": sum(1 for p in progress if p.completion_date >= last_30),
        "unique_videos_completed": len({p.video_id for p in progress}),
        "current_streak": current_streak(completion_days(progress), now.date()),
    }


# ------------------------------
# Cross-entity aggregates
# ------------------------------
def rank_videos(videos: Iterable[Any], progress: Iterable[Any], schedules: Iterable[Any],
                limit: int) -> List[Dict[str, Any]]:
    completions = Counter(p.video_id for p in progress)
    scheduled = Counter(s.video_id for s in schedules)

    ranked = sorted(videos, key=lambda v: (-completions.get(v.id, 0), v.id))
    rows = []
    for v in ranked[:limit]:
        category = getattr(v, "category", None)
        rows.append(
            {
                "id": v.id,
                "title": v.title,
                "category": category.name if category is not None else None,
                "completions": completions.get(v.id, 0),
                "scheduled": scheduled.get(v.id, 0),
            }
        )
    return rows


def category_totals(categories: Iterable[Any], videos: Iterable[Any],
                    progress: Iterable[Any]) -> List[Dict[str, Any]]:
    completions = Counter(p.video_id for p in progress)

    members: Dict[Any, List[Any]] = defaultdict(list)
    for v in videos:
        members[v.category_id].append(v.id)

    rows = []
    for c in categories:
        video_ids = members.get(c.id, [])
        rows.append(
            {
                "id": c.id,
                "name": c.name,
                "video_count": len(video_ids),
                "total_completions": sum(completions.get(vid, 0) for vid in video_ids),
            }
        )
    return rows


def engagement_rows(patients: Iterable[Any], window_schedules: Iterable[Any],
                    progress: Iterable[Any], limit: int = ENGAGEMENT_LIMIT) -> List[Dict[str, Any]]:
    """
    One row per patient with at least one schedule in the window.
    ``window_schedules`` must already be restricted to the window.
    """
    scheduled: Counter = Counter()
    completed: Counter = Counter()
    for s in window_schedules:
        scheduled[s.user_id] += 1
        if s.completed:
            completed[s.user_id] += 1
    total_progress = Counter(p.user_id for p in progress)

    rows = []
    for user in patients:
        n_scheduled = scheduled.get(user.id, 0)
        if not n_scheduled:
            continue
        n_completed = completed.get(user.id, 0)
        rows.append(
            {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "total_scheduled": n_scheduled,
                "completed": n_completed,
                "total_progress": total_progress.get(user.id, 0),
                "completion_rate": percentage(n_completed, n_scheduled),
            }
        )

    rows.sort(key=lambda r: (-r["total_progress"], r["id"]))
    return rows[:limit]


def active_user_series(progress: Iterable[Any], days: int, now: datetime) -> Dict[str, Any]:
    """
    Distinct active users over the last ``days`` calendar days (today
    included), plus one (date, count) entry per day, oldest first.
    """
    today = now.date()
    first_day = today - timedelta(days=days - 1)

    users_by_day: Dict[date, Set[Any]] = defaultdict(set)
    for p in progress:
        day = calendar_day(p.completion_date)
        if first_day <= day <= today:
            users_by_day[day].add(p.user_id)

    active: Set[Any] = set()
    series = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        users = users_by_day.get(day, set())
        active |= users
        series.append({"date": day.isoformat(), "count": len(users)})

    return {"active_users": len(active), "daily_activity": series}


def hospital_rows(groups: Iterable[Tuple[Optional[str], int]]) -> List[Dict[str, Any]]:
    rows = [
        {"hospital": hospital, "patient_count": int(count)}
        for hospital, count in groups
        if hospital
    ]
    rows.sort(key=lambda r: r["hospital"])
    return rows


# ------------------------------
# Store-backed facade
# ------------------------------
class AdherenceAnalytics:
    """Loads the records each report needs; never writes."""

    def __init__(self, store: "EntityStore"):
        self.store = store

    def summary(self, user_id: int, now: datetime) -> Dict[str, int]:
        now = to_utc_naive(now)
        self.store.find_user(user_id)
        return summarize_progress(self.store.query_progress(user_id=user_id), now)

    def top_videos(self, limit: int = DEFAULT_TOP_VIDEOS, now: Optional[datetime] = None):
        # all-time ranking, independent of now
        limit = _require_positive(limit, "limit")
        return rank_videos(
            self.store.list_videos(),
            self.store.query_progress(),
            self.store.query_schedules(),
            limit,
        )

    def category_totals(self):
        return category_totals(
            self.store.list_categories(),
            self.store.list_videos(),
            self.store.query_progress(),
        )

    def engagement(self, days: int, now: datetime, limit: int = ENGAGEMENT_LIMIT):
        days = _require_positive(days, "days", MAX_WINDOW_DAYS)
        now = to_utc_naive(now)
        return engagement_rows(
            self.store.query_users(role=PATIENT),
            self.store.query_schedules(scheduled_from=now - timedelta(days=days)),
            self.store.query_progress(),
            limit=limit,
        )

    def active_users(self, days: int, now: datetime):
        days = _require_positive(days, "days", MAX_WINDOW_DAYS)
        now = to_utc_naive(now)
        first_day = now.date() - timedelta(days=days - 1)
        return active_user_series(
            self.store.query_progress(completed_from=start_of_day(first_day)),
            days,
            now,
        )

    def hospital_breakdown(self):
        return hospital_rows(self.store.group_users_by_hospital())

    def overview(self, now: datetime) -> Dict[str, Any]:
        now = to_utc_naive(now)
        users = self.store.query_users()
        progress = self.store.query_progress()
        schedules = self.store.query_schedules()
        completed_schedules = sum(1 for s in schedules if s.completed)
        totals = summarize_progress(progress, now)

        return {
            "users": {
                "patients": sum(1 for u in users if u.role == PATIENT),
                "experts": sum(1 for u in users if u.role == EXPERT),
            },
            "content": {
                "videos": len(self.store.list_videos()),
                "categories": len(self.store.list_categories()),
            },
            "activity": {
                "total_completions": totals["total_completed"],
                "completed_last_7_days": totals["completed_last_7_days"],
                "completed_last_30_days": totals["completed_last_30_days"],
                "unique_videos_completed": totals["unique_videos_completed"],
                "total_schedules": len(schedules),
                "completed_schedules": completed_schedules,
                "completion_rate": percentage(completed_schedules, len(schedules)),
            },
        }
