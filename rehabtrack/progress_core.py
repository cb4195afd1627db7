# rehabtrack/progress_core.py
import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from .errors import Forbidden, InvalidInput, InvalidReference, NotFound
from .permissions import can_amend_progress
from .timeutil import parse_datetime, utcnow

if TYPE_CHECKING:
    from .store import EntityStore

logger = logging.getLogger(__name__)

RATING_MIN = 1
RATING_MAX = 5

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
# keeps the row offset inside a signed 64-bit integer
MAX_PAGE = 2 ** 63 // (2 * MAX_PAGE_SIZE)

# distinguishes "field not sent" from "field cleared"
UNSET = object()


def validate_rating(rating: Any) -> Optional[int]:
    if rating is None:
        return None
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidInput(f"rating must be an integer between {RATING_MIN} and {RATING_MAX}")
    if not RATING_MIN <= rating <= RATING_MAX:
        raise InvalidInput(f"rating must be between {RATING_MIN} and {RATING_MAX}")
    return rating


def validate_notes(notes: Any) -> Optional[str]:
    if notes is None or isinstance(notes, str):
        return notes
    raise InvalidInput("notes must be a string")


class ProgressRecorder:
    """
    Append-only write path for the progress history.
    """

    def __init__(self, store: "EntityStore", clock=utcnow):
        self.store = store
        self.clock = clock

    def append(self, user_id: int, video_id: int, completion_date: datetime,
               rating: Optional[int] = None, notes: Optional[str] = None):
        """
        Stage a history row. The caller owns the transaction, which is how
        schedule completion keeps the flag flip and this insert together.
        """
        return self.store.insert_progress(
            user_id=user_id,
            video_id=video_id,
            completion_date=completion_date,
            rating=rating,
            notes=notes,
        )

    def record(self, user_id: int, video_id: int, completion_date: Any = None,
               rating: Any = None, notes: Optional[str] = None):
        rating = validate_rating(rating)
        notes = validate_notes(notes)
        when = parse_datetime(completion_date, "completion_date") or self.clock()

        try:
            self.store.find_video(video_id)
        except NotFound as exc:
            raise InvalidReference(f"video {video_id} does not exist") from exc

        with self.store.transaction():
            progress = self.append(user_id, video_id, when, rating=rating, notes=notes)

        logger.info("progress %s recorded for user %s video %s", progress.id, user_id, video_id)
        return progress

    def amend(self, progress_id: int, caller_id: int, notes: Any = UNSET, rating: Any = UNSET):
        progress = self.store.find_progress(progress_id)
        if not can_amend_progress(caller_id, progress.user_id):
            logger.debug("user %s denied amending progress %s", caller_id, progress_id)
            raise Forbidden()

        values: Dict[str, Any] = {}
        if notes is not UNSET:
            values["notes"] = validate_notes(notes)
        if rating is not UNSET:
            values["rating"] = validate_rating(rating)

        if not values:
            return progress

        with self.store.transaction():
            progress = self.store.update_progress(progress_id, values)
        return progress

    def list_for_user(self, user_id: int, video_id: Optional[int] = None,
                      start: Any = None, end: Any = None,
                      page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Tuple[List[Any], Dict[str, int]]:
        page = max(1, min(int(page), MAX_PAGE))
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))

        filters = {
            "user_id": user_id,
            "video_id": video_id,
            "completed_from": parse_datetime(start, "start_date"),
            "completed_to": parse_datetime(end, "end_date"),
        }

        items = self.store.query_progress(offset=(page - 1) * limit, limit=limit, **filters)
        total = self.store.count_progress(**filters)

        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        }
        return items, pagination
