# rehabtrack/routes/schedule_routes.py
from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..errors import InvalidInput
from ..schedule_core import ScheduleLifecycle
from .common import bool_arg, current_caller, get_store, int_or_none, json_body

schedules_bp = Blueprint("schedules", __name__)


# ------------------------------
# GET /api/schedules?start_date=&end_date=&completed=
# ------------------------------
@schedules_bp.route("", methods=["GET"])
@jwt_required()
def list_schedules():
    """
    Lists the caller's own schedules, oldest first. Completed schedules
    older than a day are purged before the read.
    """
    store = get_store()
    user = current_caller(store)

    schedules = ScheduleLifecycle(store).list_for_user(
        user.id,
        start=request.args.get("start_date"),
        end=request.args.get("end_date"),
        completed=bool_arg("completed"),
    )
    return jsonify({"schedules": [s.to_dict() for s in schedules]}), 200


@schedules_bp.route("/<int:schedule_id>", methods=["GET"])
@jwt_required()
def get_schedule(schedule_id):
    store = get_store()
    user = current_caller(store)

    schedule = ScheduleLifecycle(store).get(schedule_id, user)
    return jsonify({"schedule": schedule.to_dict()}), 200


# ------------------------------
# POST /api/schedules
# ------------------------------
@schedules_bp.route("", methods=["POST"])
@jwt_required()
def create_schedule():
    """
    Expected body:
    {
      "video_id": 3,
      "scheduled_date": "2025-11-21T09:00:00Z",
      "user_id": 12          // experts/admins only, optional
    }
    """
    store = get_store()
    user = current_caller(store)
    data = json_body()

    video_id = int_or_none(data.get("video_id"), "video_id")
    if video_id is None:
        raise InvalidInput("video_id is required")

    schedule = ScheduleLifecycle(store).create(
        user,
        video_id,
        data.get("scheduled_date"),
        target_user_id=int_or_none(data.get("user_id"), "user_id"),
    )
    return jsonify({"schedule": schedule.to_dict()}), 201


# ------------------------------
# PUT /api/schedules/<id>/complete
# ------------------------------
@schedules_bp.route("/<int:schedule_id>/complete", methods=["PUT"])
@jwt_required()
def complete_schedule(schedule_id):
    store = get_store()
    user = current_caller(store)

    schedule, progress = ScheduleLifecycle(store).complete(schedule_id, user.id)
    return (
        jsonify(
            {
                "message": "Schedule completed",
                "schedule": schedule.to_dict(),
                "progress": progress.to_dict(),
            }
        ),
        200,
    )


@schedules_bp.route("/<int:schedule_id>", methods=["DELETE"])
@jwt_required()
def delete_schedule(schedule_id):
    store = get_store()
    user = current_caller(store)

    ScheduleLifecycle(store).delete(schedule_id, user)
    return jsonify({"message": "Schedule deleted"}), 200
