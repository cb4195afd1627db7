# rehabtrack/schedule_core.py
"""
Lifecycle of a scheduled session: pending -> completed, then purged.

There is no "uncomplete". Completed schedules whose scheduled date is older
than RETENTION are purged the next time their owner lists schedules; the
progress history they produced is never touched.
"""
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, List, Optional

from .errors import AlreadyCompleted, Forbidden, InvalidInput, InvalidReference, NotFound
from .permissions import can_complete_schedule, can_manage_schedule, can_schedule_for
from .progress_core import ProgressRecorder
from .timeutil import parse_datetime, utcnow

if TYPE_CHECKING:
    from .store import EntityStore

logger = logging.getLogger(__name__)

RETENTION = timedelta(hours=24)


class ScheduleLifecycle:
    def __init__(self, store: "EntityStore", clock=utcnow, recorder: Optional[ProgressRecorder] = None):
        self.store = store
        self.clock = clock
        self.recorder = recorder or ProgressRecorder(store, clock=clock)

    # ------------------------------
    # create
    # ------------------------------
    def create(self, caller, video_id: int, scheduled_date: Any, target_user_id: Optional[int] = None):
        """
        ``caller`` is the authenticated user (needs ``id`` and ``role``).
        Staff may pass ``target_user_id`` to plan a session for a patient;
        the patient owns the result.
        """
        when = parse_datetime(scheduled_date, "scheduled_date")
        if when is None:
            raise InvalidInput("scheduled_date is required")

        owner_id = caller.id if target_user_id is None else int(target_user_id)
        if not can_schedule_for(caller.role, caller.id, owner_id):
            logger.debug("user %s may not schedule for user %s", caller.id, owner_id)
            raise Forbidden("only experts and admins can schedule for other users")

        if owner_id != caller.id:
            try:
                self.store.find_user(owner_id)
            except NotFound as exc:
                raise InvalidReference(f"user {owner_id} does not exist") from exc

        try:
            self.store.find_video(video_id)
        except NotFound as exc:
            raise InvalidReference(f"video {video_id} does not exist") from exc

        with self.store.transaction():
            schedule = self.store.insert_schedule(
                user_id=owner_id,
                video_id=video_id,
                scheduled_date=when,
                completed=False,
                completed_at=None,
            )

        logger.info(
            "schedule %s created for user %s by user %s", schedule.id, owner_id, caller.id
        )
        return schedule

    # ------------------------------
    # read
    # ------------------------------
    def get(self, schedule_id: int, caller):
        schedule = self.store.find_schedule(schedule_id)
        if not can_manage_schedule(caller.role, caller.id, schedule.user_id):
            raise Forbidden()
        return schedule

    def purge_stale(self, user_id: int, now: Optional[datetime] = None) -> int:
        """Delete this user's completed schedules dated before now - RETENTION."""
        now = now or self.clock()
        with self.store.transaction():
            removed = self.store.delete_schedules(
                user_id=user_id,
                completed=True,
                scheduled_before=now - RETENTION,
            )
        if removed:
            logger.info("purged %s stale schedules for user %s", removed, user_id)
        return removed

    def list_for_user(self, user_id: int, start: Any = None, end: Any = None,
                      completed: Optional[bool] = None) -> List[Any]:
        start = parse_datetime(start, "start_date")
        end = parse_datetime(end, "end_date")

        self.purge_stale(user_id)
        return self.store.query_schedules(
            user_id=user_id,
            completed=completed,
            scheduled_from=start,
            scheduled_to=end,
        )

    # ------------------------------
    # complete
    # ------------------------------
    def complete(self, schedule_id: int, caller_id: int):
        """
        Flip the schedule to completed and append the matching progress row in
        one transaction. Returns (schedule, progress).
        """
        schedule = self.store.find_schedule(schedule_id)
        if not can_complete_schedule(caller_id, schedule.user_id):
            logger.debug("user %s denied completing schedule %s", caller_id, schedule_id)
            raise Forbidden()
        if schedule.completed:
            raise AlreadyCompleted()

        now = self.clock()
        with self.store.transaction():
            updated = self.store.update_schedule(
                schedule_id,
                {"completed": True, "completed_at": now},
                only_pending=True,
            )
            if not updated:
                # lost a race with another completion of the same schedule
                raise AlreadyCompleted()
            progress = self.recorder.append(schedule.user_id, schedule.video_id, now)

        logger.info(
            "schedule %s completed by user %s (progress %s)", schedule_id, caller_id, progress.id
        )
        return self.store.find_schedule(schedule_id), progress

    # ------------------------------
    # delete
    # ------------------------------
    def delete(self, schedule_id: int, caller) -> None:
        schedule = self.store.find_schedule(schedule_id)
        if not can_manage_schedule(caller.role, caller.id, schedule.user_id):
            raise Forbidden()

        with self.store.transaction():
            self.store.delete_schedules(schedule_id=schedule_id)
        logger.info("schedule %s deleted by user %s", schedule_id, caller.id)
