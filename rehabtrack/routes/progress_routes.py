# rehabtrack/routes/progress_routes.py
from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..analytics_core import AdherenceAnalytics
from ..errors import InvalidInput
from ..progress_core import DEFAULT_PAGE_SIZE, UNSET, ProgressRecorder
from ..timeutil import utcnow
from .common import current_caller, get_store, int_arg, int_or_none, json_body

progress_bp = Blueprint("progress", __name__)


# ------------------------------
# GET /api/progress?video_id=&start_date=&end_date=&page=1&limit=20
# ------------------------------
@progress_bp.route("", methods=["GET"])
@jwt_required()
def list_progress():
    store = get_store()
    user = current_caller(store)

    items, pagination = ProgressRecorder(store).list_for_user(
        user.id,
        video_id=int_or_none(request.args.get("video_id"), "video_id"),
        start=request.args.get("start_date"),
        end=request.args.get("end_date"),
        page=int_arg("page", 1),
        limit=int_arg("limit", DEFAULT_PAGE_SIZE),
    )
    return jsonify({"progress": [p.to_dict() for p in items], "pagination": pagination}), 200


@progress_bp.route("/stats", methods=["GET"])
@jwt_required()
def progress_stats():
    """
    Returns:
    {
      "total_completed": 12,
      "completed_last_7_days": 4,
      "completed_last_30_days": 10,
      "unique_videos_completed": 5,
      "current_streak": 3
    }
    """
    store = get_store()
    user = current_caller(store)
    return jsonify(AdherenceAnalytics(store).summary(user.id, utcnow())), 200


# ------------------------------
# POST /api/progress
# ------------------------------
@progress_bp.route("", methods=["POST"])
@jwt_required()
def record_progress():
    """
    Logs a session that was not tied to a schedule.

    Expected body:
    {
      "video_id": 3,
      "completion_date": "2025-11-20T18:30:00Z",   // optional, defaults to now
      "rating": 4,                                  // optional, 1..5
      "notes": "knee felt better"                   // optional
    }
    """
    store = get_store()
    user = current_caller(store)
    data = json_body()

    video_id = int_or_none(data.get("video_id"), "video_id")
    if video_id is None:
        raise InvalidInput("video_id is required")

    progress = ProgressRecorder(store).record(
        user.id,
        video_id,
        completion_date=data.get("completion_date"),
        rating=int_or_none(data.get("rating"), "rating"),
        notes=data.get("notes"),
    )
    return jsonify({"progress": progress.to_dict()}), 201


# ------------------------------
# PUT /api/progress/<id>
# ------------------------------
@progress_bp.route("/<int:progress_id>", methods=["PUT"])
@jwt_required()
def amend_progress(progress_id):
    """Only notes and rating can change; send null to clear either."""
    store = get_store()
    user = current_caller(store)
    data = json_body()

    progress = ProgressRecorder(store).amend(
        progress_id,
        user.id,
        notes=data["notes"] if "notes" in data else UNSET,
        rating=int_or_none(data["rating"], "rating") if "rating" in data else UNSET,
    )
    return jsonify({"progress": progress.to_dict()}), 200
