# rehabtrack/permissions.py
"""
Central capability checks: who may act on whose data.

All checks are plain functions of (caller role, caller id, owner id) so the
rules can be tested without a request or a database.
"""

PATIENT = "patient"
EXPERT = "expert"
ADMIN = "admin"

ROLES = (PATIENT, EXPERT, ADMIN)
STAFF_ROLES = (EXPERT, ADMIN)


def is_staff(role: str) -> bool:
    return role in STAFF_ROLES


def can_schedule_for(caller_role: str, caller_id: int, target_id: int) -> bool:
    """Anyone may schedule for themselves; only staff on someone else's behalf."""
    if caller_id == target_id:
        return True
    return is_staff(caller_role)


def can_manage_schedule(caller_role: str, caller_id: int, owner_id: int) -> bool:
    """Read or delete a schedule."""
    return caller_id == owner_id or is_staff(caller_role)


def can_complete_schedule(caller_id: int, owner_id: int) -> bool:
    # staff may plan sessions for a patient but never complete them
    return caller_id == owner_id


def can_amend_progress(caller_id: int, owner_id: int) -> bool:
    return caller_id == owner_id


def can_view_analytics(caller_role: str) -> bool:
    return is_staff(caller_role)


def can_view_hospitals(caller_role: str) -> bool:
    return caller_role == ADMIN
