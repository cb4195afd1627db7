# rehabtrack/routes/common.py
from typing import Any, Optional

from flask import request
from flask_jwt_extended import get_jwt_identity

from ..errors import InvalidInput
from ..store import MAX_ID, SqlEntityStore


def get_store() -> SqlEntityStore:
    return SqlEntityStore()


def current_caller(store: SqlEntityStore):
    """The authenticated user row; NotFound if the token outlived the account."""
    return store.find_user(int_or_none(get_jwt_identity(), "identity"))


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def int_or_none(value: Any, field: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidInput(f"{field} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be an integer")
    # ids are signed 64-bit columns
    if not -MAX_ID - 1 <= parsed <= MAX_ID:
        raise InvalidInput(f"{field} is out of range")
    return parsed


def int_arg(name: str, default: int) -> int:
    value = int_or_none(request.args.get(name), name)
    return default if value is None else value


def bool_arg(name: str) -> Optional[bool]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    raw = raw.strip().lower()
    if raw in ("true", "1", "yes"):
        return True
    if raw in ("false", "0", "no"):
        return False
    raise InvalidInput(f"{name} must be true or false")
