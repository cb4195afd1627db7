# rehabtrack/routes/stats_routes.py
from functools import wraps

from flask import Blueprint, current_app, g, jsonify
from flask_jwt_extended import jwt_required

from ..analytics_core import ENGAGEMENT_LIMIT, AdherenceAnalytics
from ..errors import Forbidden
from ..permissions import can_view_analytics, can_view_hospitals
from ..timeutil import utcnow
from .common import current_caller, get_store, int_arg

stats_bp = Blueprint("stats", __name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def staff_required(check=can_view_analytics):
    """Loads the caller into ``g`` and rejects roles the check refuses."""

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            store = get_store()
            user = current_caller(store)
            if not check(user.role):
                raise Forbidden("insufficient role")
            g.store = store
            g.caller = user
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def _analytics() -> AdherenceAnalytics:
    return AdherenceAnalytics(g.store)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@stats_bp.route("/overview", methods=["GET"])
@staff_required()
def overview():
    return jsonify(_analytics().overview(utcnow())), 200


@stats_bp.route("/users/<int:user_id>/summary", methods=["GET"])
@staff_required()
def user_summary(user_id):
    patient = g.store.find_user(user_id)
    summary = _analytics().summary(user_id, utcnow())
    return jsonify({"user": patient.to_dict(), "summary": summary}), 200


@stats_bp.route("/active-users", methods=["GET"])
@staff_required()
def active_users():
    """
    GET /api/stats/active-users?days=7

    Returns:
    {
      "active_users": 4,
      "daily_activity": [{"date": "2025-11-15", "count": 0}, ...]
    }
    """
    days = int_arg("days", 7)
    return jsonify(_analytics().active_users(days, utcnow())), 200


@stats_bp.route("/videos", methods=["GET"])
@staff_required()
def top_videos():
    limit = int_arg("limit", current_app.config.get("TOP_VIDEOS_DEFAULT_LIMIT", 10))
    return jsonify({"top_videos": _analytics().top_videos(limit, utcnow())}), 200


@stats_bp.route("/engagement", methods=["GET"])
@staff_required()
def engagement():
    days = int_arg("days", 30)
    rows = _analytics().engagement(days, utcnow(), limit=ENGAGEMENT_LIMIT)
    return jsonify({"users": rows}), 200


@stats_bp.route("/categories", methods=["GET"])
@staff_required()
def categories():
    return jsonify({"categories": _analytics().category_totals()}), 200


@stats_bp.route("/hospitals", methods=["GET"])
@staff_required(can_view_hospitals)
def hospitals():
    return jsonify({"hospitals": _analytics().hospital_breakdown()}), 200
