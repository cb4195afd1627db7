"""Schedule lifecycle: creation, exactly-once completion, purge and delete."""

from __future__ import annotations

from datetime import timedelta

import pytest

from rehabtrack.errors import AlreadyCompleted, Forbidden, InvalidInput, InvalidReference, NotFound
from rehabtrack.schedule_core import RETENTION, ScheduleLifecycle

from conftest import NOW


def _assert_completion_invariant(store) -> None:
    for s in store.schedules.values():
        assert s.completed == (s.completed_at is not None)


@pytest.fixture()
def lifecycle(store, clock):
    return ScheduleLifecycle(store, clock=clock)


def test_create_inserts_pending_schedule(store, lifecycle) -> None:
    patient = store.add_user()
    video = store.add_video()

    schedule = lifecycle.create(patient, video.id, "2025-06-16T09:00:00Z")

    assert schedule.user_id == patient.id
    assert schedule.completed is False
    assert schedule.completed_at is None
    assert schedule.scheduled_date == NOW.replace(day=16, hour=9)
    _assert_completion_invariant(store)


def test_expert_schedules_on_behalf_of_patient(store, lifecycle) -> None:
    patient = store.add_user()
    expert = store.add_user(role="expert")
    video = store.add_video()

    schedule = lifecycle.create(expert, video.id, NOW, target_user_id=patient.id)

    assert schedule.user_id == patient.id


def test_patient_cannot_schedule_for_someone_else(store, lifecycle) -> None:
    patient = store.add_user()
    other = store.add_user()
    video = store.add_video()

    with pytest.raises(Forbidden):
        lifecycle.create(patient, video.id, NOW, target_user_id=other.id)
    assert store.schedules == {}


def test_create_rejects_dangling_references(store, lifecycle) -> None:
    expert = store.add_user(role="expert")
    video = store.add_video()

    with pytest.raises(InvalidReference):
        lifecycle.create(expert, 9999, NOW)
    with pytest.raises(InvalidReference):
        lifecycle.create(expert, video.id, NOW, target_user_id=9999)
    assert store.schedules == {}


@pytest.mark.parametrize("bad_date", [None, "", "next tuesday", 42])
def test_create_rejects_bad_dates(store, lifecycle, bad_date) -> None:
    patient = store.add_user()
    video = store.add_video()

    with pytest.raises(InvalidInput):
        lifecycle.create(patient, video.id, bad_date)


def test_complete_flips_state_and_appends_progress(store, lifecycle) -> None:
    patient = store.add_user()
    video = store.add_video()
    schedule = store.add_schedule(patient, video, NOW - timedelta(hours=2))

    completed, progress = lifecycle.complete(schedule.id, patient.id)

    assert completed.completed is True
    assert completed.completed_at == NOW
    assert progress.user_id == patient.id
    assert progress.video_id == video.id
    assert progress.completion_date == NOW
    assert list(store.progress) == [progress.id]
    _assert_completion_invariant(store)


def test_second_completion_is_rejected_and_history_unchanged(store, lifecycle) -> None:
    patient = store.add_user()
    video = store.add_video()
    schedule = store.add_schedule(patient, video, NOW)

    _, first = lifecycle.complete(schedule.id, patient.id)
    before = vars(store.find_progress(first.id)).copy()

    with pytest.raises(AlreadyCompleted):
        lifecycle.complete(schedule.id, patient.id)

    assert len(store.progress) == 1
    assert vars(store.find_progress(first.id)) == before
    _assert_completion_invariant(store)


def test_only_owner_may_complete(store, lifecycle) -> None:
    patient = store.add_user()
    admin = store.add_user(role="admin")
    video = store.add_video()
    schedule = store.add_schedule(patient, video, NOW)

    with pytest.raises(Forbidden):
        lifecycle.complete(schedule.id, admin.id)
    assert store.find_schedule(schedule.id).completed is False
    assert store.progress == {}


def test_complete_unknown_schedule(lifecycle) -> None:
    with pytest.raises(NotFound):
        lifecycle.complete(12345, 1)


def test_completion_rolls_back_when_history_insert_fails(store, lifecycle) -> None:
    patient = store.add_user()
    video = store.add_video()
    schedule = store.add_schedule(patient, video, NOW)
    store.fail_progress_insert = True

    with pytest.raises(RuntimeError):
        lifecycle.complete(schedule.id, patient.id)

    stored = store.find_schedule(schedule.id)
    assert stored.completed is False
    assert stored.completed_at is None
    assert store.progress == {}


def test_lost_completion_race_writes_no_history(store, lifecycle, monkeypatch) -> None:
    patient = store.add_user()
    video = store.add_video()
    schedule = store.add_schedule(patient, video, NOW)

    # another request flipped the row between our read and our update
    monkeypatch.setattr(store, "update_schedule", lambda *args, **kwargs: 0)

    with pytest.raises(AlreadyCompleted):
        lifecycle.complete(schedule.id, patient.id)
    assert store.progress == {}


def test_purge_removes_only_stale_completed_schedules_of_that_user(store, lifecycle) -> None:
    alice = store.add_user()
    bob = store.add_user()
    video = store.add_video()

    stale = store.add_schedule(alice, video, NOW - RETENTION - timedelta(minutes=1), completed=True)
    recent = store.add_schedule(alice, video, NOW - RETENTION + timedelta(minutes=1), completed=True)
    old_pending = store.add_schedule(alice, video, NOW - timedelta(days=3))
    bobs_stale = store.add_schedule(bob, video, NOW - timedelta(days=3), completed=True)

    removed = lifecycle.purge_stale(alice.id, NOW)

    assert removed == 1
    assert stale.id not in store.schedules
    assert {recent.id, old_pending.id, bobs_stale.id} <= set(store.schedules)


def test_list_purges_then_orders_by_date(store, lifecycle) -> None:
    patient = store.add_user()
    video = store.add_video()
    later = store.add_schedule(patient, video, NOW + timedelta(days=2))
    sooner = store.add_schedule(patient, video, NOW + timedelta(hours=1))
    store.add_schedule(patient, video, NOW - timedelta(days=2), completed=True)

    listed = lifecycle.list_for_user(patient.id)

    assert [s.id for s in listed] == [sooner.id, later.id]


def test_list_filters_by_completion_and_range(store, lifecycle) -> None:
    patient = store.add_user()
    video = store.add_video()
    done = store.add_schedule(patient, video, NOW - timedelta(hours=1), completed=True)
    pending = store.add_schedule(patient, video, NOW + timedelta(days=1))
    store.add_schedule(patient, video, NOW + timedelta(days=10))

    assert [s.id for s in lifecycle.list_for_user(patient.id, completed=True)] == [done.id]
    in_range = lifecycle.list_for_user(
        patient.id, start=NOW.isoformat(), end=(NOW + timedelta(days=2)).isoformat()
    )
    assert [s.id for s in in_range] == [pending.id]


def test_delete_keeps_history(store, lifecycle) -> None:
    patient = store.add_user()
    video = store.add_video()
    schedule = store.add_schedule(patient, video, NOW)
    _, progress = lifecycle.complete(schedule.id, patient.id)

    lifecycle.delete(schedule.id, patient)

    assert schedule.id not in store.schedules
    assert progress.id in store.progress


def test_delete_permissions(store, lifecycle) -> None:
    patient = store.add_user()
    stranger = store.add_user()
    expert = store.add_user(role="expert")
    video = store.add_video()
    schedule = store.add_schedule(patient, video, NOW)

    with pytest.raises(Forbidden):
        lifecycle.delete(schedule.id, stranger)
    with pytest.raises(Forbidden):
        lifecycle.get(schedule.id, stranger)

    assert lifecycle.get(schedule.id, expert) is schedule
    lifecycle.delete(schedule.id, expert)
    assert store.schedules == {}
